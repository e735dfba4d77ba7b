import asyncio
import math
from datetime import timedelta

import pytest

from app.models.like import Like
from app.models.location import UserLocation
from app.models.user import User
from app.services.proximity import (
    EARTH_RADIUS_KM,
    SqlProximityQuery,
    band_rows,
    bounding_box,
    haversine_km,
    utcnow,
)

from conftest import make_row

# Waterloo, ON; one degree of latitude is roughly 111 km
ORIGIN = (43.4723, -80.5449)


def _north_of(km: float):
    return ORIGIN[0] + km / 111.2, ORIGIN[1]


def test_haversine_known_distance():
    # Toronto to Waterloo is roughly 94 km
    assert haversine_km(43.6532, -79.3832, 43.4643, -80.5204) == pytest.approx(94, abs=3)


def test_haversine_zero_for_same_point():
    assert haversine_km(*ORIGIN, *ORIGIN) == 0


def test_bounding_box_drops_longitude_near_antimeridian():
    min_lat, max_lat, min_lng, max_lng = bounding_box(0.0, 179.99, 10)

    assert min_lat < 0 < max_lat
    assert min_lng is None and max_lng is None


def test_band_rows_is_exclusive_and_nearest_first():
    candidates = [
        (4.0, make_row("m2")),
        (0.5, make_row("c1")),
        (11.0, make_row("out")),
        (1.0, make_row("c2")),
        (2.0, make_row("m1")),
        (9.5, make_row("f1")),
    ]

    bands = band_rows(candidates, 1, 5, 10)

    assert [r.user_id for r in bands.close] == ["c1", "c2"]
    assert [r.user_id for r in bands.medium] == ["m1", "m2"]
    assert [r.user_id for r in bands.far] == ["f1"]


def _seed(session_factory):
    now = utcnow()
    people = {
        "me": (ORIGIN, now, None),
        "close": (_north_of(0.5), now, "t-close"),
        "medium": (_north_of(3), now, "t-medium"),
        "far": (_north_of(8), now, None),
        "beyond": (_north_of(25), now, "t-beyond"),
        "stale": (_north_of(0.2), now - timedelta(days=2), "t-stale"),
    }
    with session_factory() as db:
        for user_id, (point, seen, playing) in people.items():
            db.add(User(user_id=user_id, first_name=user_id.title(), last_name="Tester", current_playing=playing))
            db.add(UserLocation(user_id=user_id, lat=point[0], lng=point[1], updated_at=seen))
        db.flush()
        db.add_all(
            [
                Like(liker_id="me", likee_id="close"),
                Like(liker_id="medium", likee_id="close"),
                Like(liker_id="me", likee_id="medium"),
            ]
        )
        db.commit()


def test_sql_proximity_bands_users_around_requester(session_factory):
    _seed(session_factory)

    bands = asyncio.run(SqlProximityQuery(session_factory).find_nearby("me", 1, 5, 10))

    assert [r.user_id for r in bands.close] == ["close"]
    assert [r.user_id for r in bands.medium] == ["medium"]
    assert [r.user_id for r in bands.far] == ["far"]

    close = bands.close[0]
    assert close.current_playing == "t-close"
    assert int(close.likes) == 2
    assert int(bands.medium[0].likes) == 1
    assert bands.far[0].current_playing is None


def test_sql_proximity_without_requester_location_is_empty(session_factory):
    _seed(session_factory)

    bands = asyncio.run(SqlProximityQuery(session_factory).find_nearby("nobody", 1, 5, 10))

    assert (bands.close, bands.medium, bands.far) == ([], [], [])


@pytest.mark.parametrize("lat, lng", [(0.0, 0.0), (43.4723, -80.5449), (70.0, 25.0)])
def test_bounding_box_contains_points_on_the_outer_radius(lat, lng):
    radius_km = 10.0
    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)

    # due north, south, east and west at (almost) exactly the radius
    dlat = math.degrees(radius_km * 0.9999 / EARTH_RADIUS_KM)
    dlng = dlat / math.cos(math.radians(lat))
    for point_lat, point_lng in [(lat + dlat, lng), (lat - dlat, lng), (lat, lng + dlng), (lat, lng - dlng)]:
        assert haversine_km(lat, lng, point_lat, point_lng) <= radius_km
        assert min_lat <= point_lat <= max_lat
        assert min_lng <= point_lng <= max_lng


def test_sql_proximity_keeps_user_just_inside_far_radius(session_factory):
    now = utcnow()
    edge_lat = 9.995 / 111.195
    with session_factory() as db:
        db.add_all(
            [
                User(user_id="me", first_name="Me", last_name="Tester"),
                User(user_id="edge", first_name="Edge", last_name="Tester"),
                UserLocation(user_id="me", lat=0.0, lng=0.0, updated_at=now),
                UserLocation(user_id="edge", lat=edge_lat, lng=0.0, updated_at=now),
            ]
        )
        db.commit()

    assert haversine_km(0.0, 0.0, edge_lat, 0.0) <= 10

    bands = asyncio.run(SqlProximityQuery(session_factory).find_nearby("me", 1, 5, 10))

    assert [r.user_id for r in bands.far] == ["edge"]
