from typing import AsyncIterator

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from app.core.db import get_session_factory
from app.services.history import HistoryEnricher, SqlHistoryStore
from app.services.like_writer import LikeWriter
from app.services.nearby import BatchEnrichmentCoordinator
from app.services.proximity import SqlProximityQuery
from app.services.spotify import SpotifyClient
from app.services.status_writer import StatusWriter


async def get_spotify() -> AsyncIterator[SpotifyClient]:
    client = SpotifyClient()
    try:
        yield client
    finally:
        await client.aclose()


def get_coordinator(
    session_factory: sessionmaker = Depends(get_session_factory),
    spotify: SpotifyClient = Depends(get_spotify),
) -> BatchEnrichmentCoordinator:
    return BatchEnrichmentCoordinator(
        proximity=SqlProximityQuery(session_factory),
        resolver=spotify,
        histories=HistoryEnricher(SqlHistoryStore(session_factory), spotify),
    )


def get_status_writer(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> StatusWriter:
    return StatusWriter(session_factory)


def get_like_writer(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> LikeWriter:
    return LikeWriter(session_factory)
