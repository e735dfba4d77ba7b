import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_VERIFY_MODE", "hs256")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "nearby-listeners-tests.log"))
os.environ.setdefault("SPOTIFY_CLIENT_ID", "test-client")
os.environ.setdefault("SPOTIFY_CLIENT_SECRET", "test-secret")

from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from app.core.db import build_engine, build_session_factory
from app.core.init_db import init_db
from app.schemas.nearby import TrackMetadata
from app.services.ports import NearbyUserRow, ProximityBands


def make_track(track_id: str) -> TrackMetadata:
    return TrackMetadata(
        id=track_id,
        title=f"Title {track_id}",
        album=f"Album {track_id}",
        artist="Artist One, Artist Two",
        url=f"https://open.spotify.com/track/{track_id}",
    )


def make_row(user_id: str, playing: Optional[str] = None, likes="0") -> NearbyUserRow:
    return NearbyUserRow(
        user_id=user_id,
        first_name=f"First {user_id}",
        last_name=f"Last {user_id}",
        avatar=None,
        likes=likes,
        current_playing=playing,
    )


class FakeResolver:
    def __init__(self, unknown: Sequence[str] = (), fail: bool = False):
        self.calls: List[List[Optional[str]]] = []
        self.unknown = set(unknown)
        self.fail = fail

    async def resolve(self, track_ids):
        self.calls.append(list(track_ids))
        if self.fail:
            raise RuntimeError("resolver down")
        return [
            make_track(tid) if tid and tid not in self.unknown else None
            for tid in track_ids
        ]


class FakeProximity:
    def __init__(self, bands: ProximityBands, fail: bool = False):
        self.bands = bands
        self.fail = fail
        self.calls = []

    async def find_nearby(self, user_id, r_close, r_medium, r_far):
        self.calls.append((user_id, r_close, r_medium, r_far))
        if self.fail:
            raise RuntimeError("database unreachable")
        return self.bands


class FakeHistory:
    def __init__(self, plays: Dict[str, List[str]], failing_user: Optional[str] = None):
        self.plays = plays
        self.failing_user = failing_user
        self.calls: List[str] = []

    async def history(self, user_id):
        self.calls.append(user_id)
        if user_id == self.failing_user:
            raise RuntimeError(f"history unavailable for {user_id}")
        return [make_track(tid) for tid in self.plays.get(user_id, [])]


class FakeHistoryStore:
    def __init__(self, plays: Dict[str, List[str]]):
        self.plays = plays

    async def history_ids(self, user_id):
        return list(self.plays.get(user_id, []))


@pytest.fixture
def session_factory(tmp_path: Path):
    engine = build_engine(f"sqlite:///{tmp_path / 'nearby.db'}")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()
