from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from loguru import logger
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from fastapi.concurrency import run_in_threadpool

from app.core.errors import UpstreamQueryFailure
from app.core.nearby_config import LOCATION_EXPIRY_MINUTES
from app.services.ports import NearbyUserRow, ProximityBands

EARTH_RADIUS_KM = 6371.0088

# widen the SQL window slightly so float error never drops a row on the boundary
BOX_MARGIN = 1.001


# ------------------------------------------------------------------
# Utils
# ------------------------------------------------------------------

def utcnow() -> datetime:
    """Naive UTC timestamp, the form location rows are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def haversine_km(lat1, lng1, lat2, lng2) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, Optional[float], Optional[float]]:
    """
    Coarse lat/lng window around a point for the SQL prefilter.

    The longitude bounds are None when the window would wrap the antimeridian
    or reach a pole; the exact haversine check still runs afterwards.
    """
    dlat = math.degrees(radius_km / EARTH_RADIUS_KM) * BOX_MARGIN
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 0.01:
        return lat - dlat, lat + dlat, None, None

    dlng = dlat / cos_lat
    if lng - dlng < -180 or lng + dlng > 180:
        return lat - dlat, lat + dlat, None, None

    return lat - dlat, lat + dlat, lng - dlng, lng + dlng


def band_rows(
    candidates: List[Tuple[float, NearbyUserRow]],
    r_close: float,
    r_medium: float,
    r_far: float,
) -> ProximityBands:
    """Split (distance, row) pairs into exclusive bands, nearest first."""
    bands = ProximityBands()

    for distance, row in sorted(candidates, key=lambda c: (c[0], c[1].user_id)):
        if distance <= r_close:
            bands.close.append(row)
        elif distance <= r_medium:
            bands.medium.append(row)
        elif distance <= r_far:
            bands.far.append(row)

    return bands


# ------------------------------------------------------------------
# SQL adapter
# ------------------------------------------------------------------

class SqlProximityQuery:
    """Proximity lookup over user_locations; radii are kilometres."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def find_nearby(
        self, user_id: str, r_close: float, r_medium: float, r_far: float
    ) -> ProximityBands:
        return await run_in_threadpool(self._find_nearby, user_id, r_close, r_medium, r_far)

    def _find_nearby(
        self, user_id: str, r_close: float, r_medium: float, r_far: float
    ) -> ProximityBands:
        try:
            with self.session_factory() as db:
                origin = self._origin(db, user_id)
                if origin is None:
                    logger.info(f"[proximity] user={user_id} has no location yet")
                    return ProximityBands()

                lat, lng = origin
                candidates = [
                    (haversine_km(lat, lng, r["lat"], r["lng"]), self._row(r))
                    for r in self._candidates(db, user_id, lat, lng, r_far)
                ]
        except SQLAlchemyError as exc:
            logger.exception("[proximity] query failed")
            raise UpstreamQueryFailure(f"Proximity query failed: {exc.__class__.__name__}") from exc

        bands = band_rows(candidates, r_close, r_medium, r_far)
        logger.debug(
            f"[proximity] user={user_id} close={len(bands.close)} "
            f"medium={len(bands.medium)} far={len(bands.far)}"
        )
        return bands

    @staticmethod
    def _origin(db: Session, user_id: str) -> Optional[Tuple[float, float]]:
        row = db.execute(
            text("select lat, lng from user_locations where user_id = :user_id"),
            {"user_id": user_id},
        ).mappings().first()

        if row is None:
            return None
        return float(row["lat"]), float(row["lng"])

    @staticmethod
    def _candidates(db: Session, user_id: str, lat: float, lng: float, radius_km: float):
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
        params = {
            "user_id": user_id,
            "expiry_cutoff": utcnow() - timedelta(minutes=LOCATION_EXPIRY_MINUTES),
            "min_lat": min_lat,
            "max_lat": max_lat,
        }

        lng_filter = ""
        if min_lng is not None:
            lng_filter = "and l.lng between :min_lng and :max_lng"
            params.update(min_lng=min_lng, max_lng=max_lng)

        return db.execute(
            text(
                f"""
                select
                    u.user_id,
                    u.first_name,
                    u.last_name,
                    u.avatar,
                    u.current_playing,
                    l.lat,
                    l.lng,
                    (select count(*) from likes k where k.likee_id = u.user_id) as likes
                from users u
                join user_locations l on l.user_id = u.user_id
                where u.user_id != :user_id
                  and l.updated_at >= :expiry_cutoff
                  and l.lat between :min_lat and :max_lat
                  {lng_filter}
                """
            ).bindparams(bindparam("expiry_cutoff", type_=DateTime())),
            params,
        ).mappings().all()

    @staticmethod
    def _row(r) -> NearbyUserRow:
        return NearbyUserRow(
            user_id=str(r["user_id"]),
            first_name=r["first_name"],
            last_name=r["last_name"],
            avatar=r["avatar"],
            likes=r["likes"],
            current_playing=r["current_playing"],
        )
