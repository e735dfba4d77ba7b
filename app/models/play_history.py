from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from app.core.db import Base


class PlayHistory(Base):
    __tablename__ = "play_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.user_id"), nullable=False)
    song_id = Column(String, nullable=False)
    played_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_play_history_user_played", "user_id", "played_at"),
    )
