# backend/lessonbook/api/dependencies/database.py
"""
Request-scoped database session.

Routes depend on this symbol rather than ``lessonbook.database.get_db`` so
tests can point ``app.dependency_overrides`` at a single seam.
"""

from typing import Generator

from sqlalchemy.orm import Session

from ...database import get_db as session_scope


def get_db() -> Generator[Session, None, None]:
    """One session per request, committed or rolled back when the request ends."""
    yield from session_scope()
