from fastapi import APIRouter

from app.api.routes import like
from app.api.routes import nearby
from app.api.routes import status

api_router = APIRouter(prefix="/v1")

api_router.include_router(nearby.router, tags=["nearby"])
api_router.include_router(status.router, tags=["status"])
api_router.include_router(like.router, tags=["like"])
