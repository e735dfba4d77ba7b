"""
Nearby listeners aggregation.

The three proximity bands are flattened into one sequence so that every
currently-playing track can be resolved in a single batched call, while the
per-user histories are fetched concurrently. BandLayout records where each
band starts in the flat sequence so results can be put back into their bands
by index alone.
"""
from __future__ import annotations

import asyncio
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from loguru import logger

from app.core.errors import (
    DataCoercionWarning,
    InvalidRequest,
    MetadataResolutionFailure,
    NearbyError,
    UpstreamQueryFailure,
)
from app.schemas.enums import ProximityBand
from app.schemas.nearby import BandedResult, EnrichedNearbyUser, TrackMetadata
from app.services.ports import HistoryProvider, NearbyUserRow, ProximityBands, ProximityQuery, TrackResolver

T = TypeVar("T")


@dataclass(frozen=True)
class BandLayout:
    """Offset table for close ++ medium ++ far."""

    close_len: int
    medium_len: int
    far_len: int

    @classmethod
    def of(cls, bands: ProximityBands) -> "BandLayout":
        return cls(len(bands.close), len(bands.medium), len(bands.far))

    @property
    def total(self) -> int:
        return self.close_len + self.medium_len + self.far_len

    @property
    def offsets(self) -> Dict[ProximityBand, range]:
        medium_start = self.close_len
        far_start = medium_start + self.medium_len
        return {
            ProximityBand.close: range(0, medium_start),
            ProximityBand.medium: range(medium_start, far_start),
            ProximityBand.far: range(far_start, self.total),
        }

    def band_of(self, index: int) -> ProximityBand:
        if index < 0 or index >= self.total:
            raise IndexError(f"index {index} outside layout of {self.total}")
        if index < self.close_len:
            return ProximityBand.close
        if index < self.close_len + self.medium_len:
            return ProximityBand.medium
        return ProximityBand.far

    def split(self, items: Sequence[T]) -> Dict[ProximityBand, List[T]]:
        if len(items) != self.total:
            raise ValueError(f"expected {self.total} items, got {len(items)}")
        return {band: [items[i] for i in span] for band, span in self.offsets.items()}


def flatten(bands: ProximityBands) -> List[NearbyUserRow]:
    return [*bands.close, *bands.medium, *bands.far]


def coerce_likes(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value

    try:
        return int(str(value).strip())
    except ValueError:
        pass

    try:
        as_float = float(str(value).strip())
        if as_float.is_integer():
            return int(as_float)
    except ValueError:
        pass

    warnings.warn(f"malformed like count {value!r}", DataCoercionWarning, stacklevel=2)
    logger.warning(f"[nearby] malformed like count {value!r}, using 0")
    return 0


def enrich_row(
    row: NearbyUserRow,
    song: Optional[TrackMetadata],
    history: List[TrackMetadata],
) -> EnrichedNearbyUser:
    return EnrichedNearbyUser(
        user_id=row.user_id,
        first_name=row.first_name,
        last_name=row.last_name,
        avatar=row.avatar,
        likes=coerce_likes(row.likes),
        song=song,
        history=history,
    )


def validate_radii(r_close: float, r_medium: float, r_far: float) -> None:
    if not 0 < r_close < r_medium < r_far:
        raise InvalidRequest(
            f"radii must be positive and strictly increasing, got {r_close}, {r_medium}, {r_far}"
        )


class BatchEnrichmentCoordinator:
    def __init__(
        self,
        proximity: ProximityQuery,
        resolver: TrackResolver,
        histories: HistoryProvider,
    ):
        self.proximity = proximity
        self.resolver = resolver
        self.histories = histories

    async def aggregate(
        self, user_id: str, r_close: float, r_medium: float, r_far: float
    ) -> BandedResult:
        validate_radii(r_close, r_medium, r_far)

        try:
            bands = await self.proximity.find_nearby(user_id, r_close, r_medium, r_far)
        except NearbyError:
            raise
        except Exception as exc:
            raise UpstreamQueryFailure("Proximity query failed") from exc

        layout = BandLayout.of(bands)
        rows = flatten(bands)

        logger.debug(
            f"[nearby] user={user_id} rows={layout.total} "
            f"(close={layout.close_len}, medium={layout.medium_len}, far={layout.far_len})"
        )

        # one resolver call for every row, gaps included
        songs, histories = await asyncio.gather(
            self._resolve_current(rows),
            asyncio.gather(*(self._history(row.user_id) for row in rows)),
        )

        enriched = [
            enrich_row(row, song, history)
            for row, song, history in zip(rows, songs, histories)
        ]
        placed = layout.split(enriched)

        return BandedResult(
            close=placed[ProximityBand.close],
            medium=placed[ProximityBand.medium],
            far=placed[ProximityBand.far],
        )

    async def _resolve_current(self, rows: List[NearbyUserRow]) -> List[Optional[TrackMetadata]]:
        track_ids = [row.current_playing for row in rows]

        try:
            songs = await self.resolver.resolve(track_ids)
        except NearbyError:
            raise
        except Exception as exc:
            raise MetadataResolutionFailure("Current track resolution failed") from exc

        if len(songs) != len(track_ids):
            raise MetadataResolutionFailure(
                f"Track resolver returned {len(songs)} results for {len(track_ids)} ids"
            )
        return list(songs)

    async def _history(self, user_id: str) -> List[TrackMetadata]:
        try:
            return await self.histories.history(user_id)
        except NearbyError:
            raise
        except Exception as exc:
            raise MetadataResolutionFailure(f"History lookup failed for user {user_id}") from exc
