from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from app.core.db import Base


class UserLocation(Base):
    __tablename__ = "user_locations"

    user_id = Column(String, ForeignKey("users.user_id"), primary_key=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_user_locations_point", "lat", "lng"),
        Index("idx_user_locations_updated", "updated_at"),
    )
