from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from loguru import logger

from app.core.config import DATABASE_URL

# --- Base (single source of truth) ---
Base = declarative_base()


def build_engine(url: str):
    engine = create_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args={"check_same_thread": False}
        if url.startswith("sqlite")
        else {},
    )

    # --- SQL query logging ---
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        logger.debug(f"SQL: {statement} | params={parameters}")

    return engine


def build_session_factory(bind) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        future=True,
    )


# --- Engine ---
engine = build_engine(DATABASE_URL)

# --- Session factory ---
SessionLocal = build_session_factory(engine)


# --- FastAPI dependency ---
def get_session_factory() -> sessionmaker:
    return SessionLocal
