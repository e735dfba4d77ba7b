from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.logging import setup_logging
from app.core.init_db import init_db
from app.core.errors import NearbyError
from app.core.result import failure
from app.api.router import api_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Init DB once the server actually starts
    init_db()
    yield


async def nearby_error_handler(request: Request, exc: NearbyError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=failure(exc.message))


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts) or "Invalid request"


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _describe_validation_errors(exc)
    logger.warning(f"{request.method} {request.url.path} rejected: {message}")
    return JSONResponse(status_code=400, content=failure(message))


def create_app() -> FastAPI:
    app = FastAPI(
        title="Nearby Listeners Backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(NearbyError, nearby_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # All API routes
    app.include_router(api_router)

    @app.get("/health")
    def health():
        logger.debug("Health check hit")
        return {"status": "ok"}

    return app


setup_logging()
logger.info("Starting Nearby Listeners backend")

app = create_app()
