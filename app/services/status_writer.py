from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from fastapi.concurrency import run_in_threadpool

from app.core.errors import UpstreamQueryFailure
from app.models.location import UserLocation
from app.models.play_history import PlayHistory
from app.models.user import User
from app.services.proximity import utcnow


class StatusWriter:
    """Persists what a user is playing and where they are."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def set_playing(self, user_id: str, track_id: Optional[str]) -> None:
        await run_in_threadpool(self._set_playing, user_id, track_id)

    async def set_location(self, user_id: str, lat: float, lng: float) -> None:
        await run_in_threadpool(self._set_location, user_id, lat, lng)

    def _set_playing(self, user_id: str, track_id: Optional[str]) -> None:
        now = utcnow()
        try:
            with self.session_factory() as db:
                result = db.execute(
                    update(User)
                    .where(User.user_id == user_id)
                    .values(current_playing=track_id, playing_updated_at=now)
                )
                if result.rowcount == 0:
                    raise UpstreamQueryFailure(f"Unknown user: {user_id}")

                if track_id is not None:
                    db.add(PlayHistory(user_id=user_id, song_id=track_id, played_at=now))

                db.commit()
        except SQLAlchemyError as exc:
            logger.exception(f"[status] set_playing failed for user={user_id}")
            raise UpstreamQueryFailure(f"Could not store playing status: {exc.__class__.__name__}") from exc

        logger.debug(f"[status] user={user_id} playing={track_id}")

    def _set_location(self, user_id: str, lat: float, lng: float) -> None:
        try:
            with self.session_factory() as db:
                location = db.get(UserLocation, user_id)
                if location is None:
                    location = UserLocation(user_id=user_id)
                    db.add(location)

                location.lat = lat
                location.lng = lng
                location.updated_at = utcnow()
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception(f"[status] set_location failed for user={user_id}")
            raise UpstreamQueryFailure(f"Could not store location: {exc.__class__.__name__}") from exc

        logger.debug(f"[status] user={user_id} location=({lat}, {lng})")
