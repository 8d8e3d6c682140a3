# backend/lessonbook/models/share_token.py
"""
Share token models.

A share token is a bearer capability that stands in for login on the
public booking page. Only one token per (student, teacher) pair is active
at a time. The audit log is keyed by the sha256 hash of the token and
never holds the raw value.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


def _now_utc() -> datetime:
    """Return timezone-aware UTC timestamp for defaults."""
    return datetime.now(timezone.utc)


class ShareToken(Base):
    __tablename__ = "share_tokens"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    token = Column(String(128), nullable=False, unique=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    teacher_id = Column(String(64), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    access_count = Column(Integer, nullable=False, default=0)
    last_accessed = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (Index("ix_share_tokens_pair", "student_id", "teacher_id", "is_active"),)


class TokenAuditLog(Base):
    """Persisted audit sink for share-token usage."""

    __tablename__ = "token_audit_logs"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    token_hash = Column(String(64), nullable=False, index=True)
    student_id = Column(String(64), nullable=True)
    teacher_id = Column(String(64), nullable=True)
    action = Column(String(50), nullable=False)
    success = Column(Boolean, nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referer = Column(Text, nullable=True)
    details = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )
