from fastapi import APIRouter, Depends
from loguru import logger

from app.api.deps import get_spotify, get_status_writer
from app.core.auth import get_current_user_id
from app.core.errors import InvalidRequest
from app.core.result import success
from app.schemas.enums import PlayStatus
from app.schemas.status import StatusChangeRequest
from app.services.spotify import SpotifyClient
from app.services.status_writer import StatusWriter

router = APIRouter()


@router.put("/status")
async def change_status(
    payload: StatusChangeRequest,
    user_id: str = Depends(get_current_user_id),
    writer: StatusWriter = Depends(get_status_writer),
    spotify: SpotifyClient = Depends(get_spotify),
):
    if payload.status == PlayStatus.stop:
        await writer.set_playing(user_id, None)
        return success(True)

    if payload.song is None:
        raise InvalidRequest("song is required when status is PLAY")

    song = payload.song
    track = await spotify.identify_song(song.title, song.artist, song.album)
    logger.info(f"[status] user={user_id} now playing {track.id} ({track.title})")

    await writer.set_playing(user_id, track.id)
    return success(True)
