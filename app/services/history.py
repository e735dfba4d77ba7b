from __future__ import annotations

from typing import List

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from fastapi.concurrency import run_in_threadpool

from app.core.errors import MetadataResolutionFailure, NearbyError, UpstreamQueryFailure
from app.core.nearby_config import HISTORY_LIMIT
from app.models.play_history import PlayHistory
from app.schemas.nearby import TrackMetadata
from app.services.ports import HistoryStore, TrackResolver


class SqlHistoryStore:
    def __init__(self, session_factory: sessionmaker, limit: int = HISTORY_LIMIT):
        self.session_factory = session_factory
        self.limit = limit

    async def history_ids(self, user_id: str) -> List[str]:
        return await run_in_threadpool(self._history_ids, user_id)

    def _history_ids(self, user_id: str) -> List[str]:
        stmt = (
            select(PlayHistory.song_id)
            .where(PlayHistory.user_id == user_id)
            .order_by(PlayHistory.played_at.desc(), PlayHistory.id.desc())
            .limit(self.limit)
        )
        try:
            with self.session_factory() as db:
                return [str(song_id) for song_id in db.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            logger.exception(f"[history] lookup failed for user={user_id}")
            raise UpstreamQueryFailure(f"History lookup failed: {exc.__class__.__name__}") from exc


class HistoryEnricher:
    """
    Recent plays of one user as track metadata, most recent first.

    Each call makes its own resolver batch; nothing is shared with other
    users' histories or with the currently-playing batch.
    """

    def __init__(self, store: HistoryStore, resolver: TrackResolver):
        self.store = store
        self.resolver = resolver

    async def history(self, user_id: str) -> List[TrackMetadata]:
        track_ids = await self.store.history_ids(user_id)
        if not track_ids:
            return []

        try:
            tracks = await self.resolver.resolve(track_ids)
        except NearbyError:
            raise
        except Exception as exc:
            raise MetadataResolutionFailure(f"History resolution failed for user {user_id}") from exc

        # plays whose track is no longer known are left out
        return [t for t in tracks if t is not None]
