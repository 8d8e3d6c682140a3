"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from lessonbook.core.config import settings

logger = logging.getLogger(__name__)


def build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options per backend: busy timeout for SQLite, a sized pool elsewhere."""

    if db_url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
            "future": True,
        }
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": 5,
        "pool_recycle": 300,
        "pool_pre_ping": True,
        "future": True,
    }


def create_db_engine(db_url: str) -> Engine:
    db_engine = create_engine(db_url, **build_engine_kwargs(db_url))
    if db_url.startswith("sqlite"):
        event.listen(db_engine, "connect", _sqlite_on_connect)
    return db_engine


def _sqlite_on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    connection_record.info["connect_time"] = datetime.now()


engine: Engine = create_db_engine(settings.database_url)


@event.listens_for(engine, "checkout")
def receive_checkout(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
    logger.debug("Connection checked out from pool")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables for the registered models."""
    import lessonbook.models  # noqa: F401  registers mappers on Base.metadata

    Base.metadata.create_all(bind=bind or engine)


__all__ = [
    "Base",
    "SessionLocal",
    "create_db_engine",
    "engine",
    "get_db",
    "init_db",
]
