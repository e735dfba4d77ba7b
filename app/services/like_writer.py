from __future__ import annotations

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from fastapi.concurrency import run_in_threadpool

from app.core.errors import InvalidRequest, UpstreamQueryFailure
from app.models.like import Like
from app.models.user import User


class LikeWriter:
    """
    Records likes between users.

    Liking is idempotent: the (liker, likee) pair is unique, so repeating a
    like leaves a single row. Both operations return the likee's like count
    after the write.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def like(self, liker_id: str, likee_id: str) -> int:
        return await run_in_threadpool(self._like, liker_id, likee_id)

    async def unlike(self, liker_id: str, likee_id: str) -> int:
        return await run_in_threadpool(self._unlike, liker_id, likee_id)

    @staticmethod
    def _count(db: Session, likee_id: str) -> int:
        return db.execute(
            select(func.count()).select_from(Like).where(Like.likee_id == likee_id)
        ).scalar_one()

    def _like(self, liker_id: str, likee_id: str) -> int:
        if liker_id == likee_id:
            raise InvalidRequest("Users cannot like themselves")

        try:
            with self.session_factory() as db:
                if db.get(User, likee_id) is None:
                    raise InvalidRequest(f"Unknown user: {likee_id}")

                exists = db.execute(
                    select(Like.id).where(Like.liker_id == liker_id, Like.likee_id == likee_id)
                ).first()

                if exists is None:
                    db.add(Like(liker_id=liker_id, likee_id=likee_id))
                    try:
                        db.commit()
                    except IntegrityError:
                        # a concurrent like of the same pair won
                        db.rollback()

                count = self._count(db, likee_id)
        except SQLAlchemyError as exc:
            logger.exception(f"[like] like failed liker={liker_id} likee={likee_id}")
            raise UpstreamQueryFailure(f"Could not store like: {exc.__class__.__name__}") from exc

        logger.debug(f"[like] {liker_id} -> {likee_id} (likes={count})")
        return count

    def _unlike(self, liker_id: str, likee_id: str) -> int:
        try:
            with self.session_factory() as db:
                db.execute(
                    delete(Like).where(Like.liker_id == liker_id, Like.likee_id == likee_id)
                )
                db.commit()
                count = self._count(db, likee_id)
        except SQLAlchemyError as exc:
            logger.exception(f"[like] unlike failed liker={liker_id} likee={likee_id}")
            raise UpstreamQueryFailure(f"Could not remove like: {exc.__class__.__name__}") from exc

        logger.debug(f"[like] {liker_id} -x {likee_id} (likes={count})")
        return count
