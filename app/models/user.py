from sqlalchemy import Column, String, DateTime

from app.core.db import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=True, unique=True)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    avatar = Column(String, nullable=True)

    # Spotify track id, NULL when the user is not playing anything
    current_playing = Column(String, nullable=True)
    playing_updated_at = Column(DateTime, nullable=True)
