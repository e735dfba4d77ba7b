import asyncio

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import InvalidRequest
from app.models.like import Like
from app.models.user import User
from app.services.like_writer import LikeWriter
from app.services.proximity import SqlProximityQuery
from app.services.status_writer import StatusWriter


@pytest.fixture
def likes(session_factory):
    with session_factory() as db:
        db.add_all(
            [
                User(user_id="me", first_name="Me"),
                User(user_id="ada", first_name="Ada"),
                User(user_id="bob", first_name="Bob"),
            ]
        )
        db.commit()
    return LikeWriter(session_factory)


def _like_rows(session_factory):
    with session_factory() as db:
        return sorted((l.liker_id, l.likee_id) for l in db.query(Like).all())


def test_like_stores_pair_and_returns_count(likes, session_factory):
    assert asyncio.run(likes.like("me", "ada")) == 1
    assert asyncio.run(likes.like("bob", "ada")) == 2

    assert _like_rows(session_factory) == [("bob", "ada"), ("me", "ada")]


def test_repeated_like_is_idempotent(likes, session_factory):
    asyncio.run(likes.like("me", "ada"))

    assert asyncio.run(likes.like("me", "ada")) == 1
    assert _like_rows(session_factory) == [("me", "ada")]


def test_duplicate_pair_is_rejected_by_the_table(likes, session_factory):
    asyncio.run(likes.like("me", "ada"))

    with session_factory() as db:
        db.add(Like(liker_id="me", likee_id="ada"))
        with pytest.raises(IntegrityError):
            db.commit()


def test_self_like_is_rejected(likes, session_factory):
    with pytest.raises(InvalidRequest):
        asyncio.run(likes.like("me", "me"))
    assert _like_rows(session_factory) == []


def test_like_unknown_user_is_rejected(likes, session_factory):
    with pytest.raises(InvalidRequest):
        asyncio.run(likes.like("me", "ghost"))
    assert _like_rows(session_factory) == []


def test_unlike_removes_pair_and_tolerates_missing(likes, session_factory):
    asyncio.run(likes.like("me", "ada"))

    assert asyncio.run(likes.unlike("me", "ada")) == 0
    assert asyncio.run(likes.unlike("me", "ada")) == 0
    assert _like_rows(session_factory) == []


def test_likes_show_up_in_nearby_rows(likes, session_factory):
    writer = StatusWriter(session_factory)
    asyncio.run(writer.set_location("me", 43.4700, -80.5400))
    asyncio.run(writer.set_location("ada", 43.4705, -80.5405))
    asyncio.run(likes.like("me", "ada"))
    asyncio.run(likes.like("bob", "ada"))

    bands = asyncio.run(SqlProximityQuery(session_factory).find_nearby("me", 1, 5, 10))

    (ada,) = bands.close
    assert ada.user_id == "ada"
    assert int(ada.likes) == 2
