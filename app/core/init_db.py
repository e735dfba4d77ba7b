from loguru import logger
from app.core.db import engine, Base

# Import all models so SQLAlchemy registers them
from app.models.user import User  # noqa: F401
from app.models.location import UserLocation  # noqa: F401
from app.models.like import Like  # noqa: F401
from app.models.play_history import PlayHistory  # noqa: F401


def init_db(bind=None):
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created")
