"""
Dialect checks for a live session.
"""

from __future__ import annotations

from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session


def dialect_of(session: Session) -> str:
    """Name of the dialect the session talks to; unbound sessions count as SQLite."""
    try:
        bind = session.get_bind()
    except UnboundExecutionError:
        return "sqlite"
    return bind.dialect.name


def supports_row_locks(session: Session) -> bool:
    """SELECT ... FOR UPDATE is only worth emitting on PostgreSQL."""
    return dialect_of(session) == "postgresql"
