from fastapi import APIRouter, Depends, Query
from loguru import logger

from app.api.deps import get_coordinator, get_status_writer
from app.core.auth import get_current_user_id
from app.core.nearby_config import (
    DEFAULT_RADIUS_CLOSE_KM,
    DEFAULT_RADIUS_MEDIUM_KM,
    DEFAULT_RADIUS_FAR_KM,
)
from app.core.result import success
from app.schemas.location import LocationUpdateRequest
from app.services.nearby import BatchEnrichmentCoordinator
from app.services.status_writer import StatusWriter

router = APIRouter()


async def _nearby_payload(
    coordinator: BatchEnrichmentCoordinator,
    user_id: str,
    close: float = DEFAULT_RADIUS_CLOSE_KM,
    medium: float = DEFAULT_RADIUS_MEDIUM_KM,
    far: float = DEFAULT_RADIUS_FAR_KM,
) -> dict:
    result = await coordinator.aggregate(user_id, close, medium, far)
    return success(result.model_dump())


# ------------------------------------------------------------------
# NEARBY
# ------------------------------------------------------------------

@router.get("/nearby")
async def nearby(
    close: float = Query(DEFAULT_RADIUS_CLOSE_KM),
    medium: float = Query(DEFAULT_RADIUS_MEDIUM_KM),
    far: float = Query(DEFAULT_RADIUS_FAR_KM),
    user_id: str = Depends(get_current_user_id),
    coordinator: BatchEnrichmentCoordinator = Depends(get_coordinator),
):
    logger.info(f"[nearby] user={user_id} radii=({close}, {medium}, {far})")
    return await _nearby_payload(coordinator, user_id, close, medium, far)


# ------------------------------------------------------------------
# LOCATION (update, then answer with nearby)
# ------------------------------------------------------------------

@router.put("/location")
async def update_location(
    payload: LocationUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    writer: StatusWriter = Depends(get_status_writer),
    coordinator: BatchEnrichmentCoordinator = Depends(get_coordinator),
):
    await writer.set_location(user_id, payload.lat, payload.lng)
    return await _nearby_payload(coordinator, user_id)
