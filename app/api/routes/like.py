from fastapi import APIRouter, Depends
from loguru import logger

from app.api.deps import get_like_writer
from app.core.auth import get_current_user_id
from app.core.result import success
from app.services.like_writer import LikeWriter

router = APIRouter()


@router.put("/like/{likee_id}")
async def like_user(
    likee_id: str,
    user_id: str = Depends(get_current_user_id),
    writer: LikeWriter = Depends(get_like_writer),
):
    likes = await writer.like(user_id, likee_id)
    logger.info(f"[like] user={user_id} liked {likee_id}")
    return success({"user_id": likee_id, "likes": likes})


@router.delete("/like/{likee_id}")
async def unlike_user(
    likee_id: str,
    user_id: str = Depends(get_current_user_id),
    writer: LikeWriter = Depends(get_like_writer),
):
    likes = await writer.unlike(user_id, likee_id)
    return success({"user_id": likee_id, "likes": likes})
