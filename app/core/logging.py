import sys
from loguru import logger
from app.core.config import LOG_LEVEL, LOG_FILE

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function} | {message}"


def setup_logging() -> None:
    logger.remove()

    logger.add(
        sys.stdout,
        level=LOG_LEVEL,
        format=LOG_FORMAT,
    )

    logger.add(
        LOG_FILE,
        rotation="10 MB",
        retention="14 days",
        level=LOG_LEVEL,
        format=LOG_FORMAT,
    )

    logger.info("Logging initialized")
