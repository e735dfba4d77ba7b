from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence

from app.schemas.nearby import TrackMetadata


@dataclass(frozen=True)
class NearbyUserRow:
    """One row of the proximity query, before enrichment."""

    user_id: str
    first_name: str
    last_name: str
    avatar: Optional[str]
    likes: Any  # drivers may hand back a count as text
    current_playing: Optional[str]


@dataclass(frozen=True)
class ProximityBands:
    close: List[NearbyUserRow] = field(default_factory=list)
    medium: List[NearbyUserRow] = field(default_factory=list)
    far: List[NearbyUserRow] = field(default_factory=list)


class TrackResolver(Protocol):
    async def resolve(self, track_ids: Sequence[Optional[str]]) -> List[Optional[TrackMetadata]]:
        """Return metadata for each id in order; None where the id is None or unknown."""


class ProximityQuery(Protocol):
    async def find_nearby(
        self, user_id: str, r_close: float, r_medium: float, r_far: float
    ) -> ProximityBands:
        """Return band-exclusive rows of users around user_id, each band ordered."""


class HistoryStore(Protocol):
    async def history_ids(self, user_id: str) -> List[str]:
        """Return the user's played track ids, most recent first."""


class HistoryProvider(Protocol):
    async def history(self, user_id: str) -> List[TrackMetadata]:
        """Return the user's recent plays as resolved metadata."""
