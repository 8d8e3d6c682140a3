# backend/lessonbook/models/waitlist.py
"""Waitlist entries for slot patterns that are currently full."""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.sql import func
import ulid

from ..database import Base


class WaitlistStatus(str, Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    BOOKED = "booked"
    EXPIRED = "expired"
    REMOVED = "removed"


ACTIVE_WAITLIST_STATUSES = (WaitlistStatus.WAITING.value, WaitlistStatus.NOTIFIED.value)


class WaitlistEntry(Base):
    """
    One student's place in the queue for a slot pattern.

    A pattern is (teacher_id, day_of_week, start_time, end_time) with an
    optional preferred_date narrowing it to a single occurrence. Queue
    order is priority descending, then joined_at ascending.
    """

    __tablename__ = "waitlist_entries"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(64), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    preferred_date = Column(Date, nullable=True)

    priority = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=WaitlistStatus.WAITING.value, index=True)
    auto_book = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    # Sub-second precision keeps FIFO order stable for rapid joins
    joined_at = Column(DateTime(timezone=True), nullable=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    notification_expires_at = Column(DateTime(timezone=True), nullable=True)
    notified_slot_id = Column(String(26), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('waiting', 'notified', 'booked', 'expired', 'removed')",
            name="ck_waitlist_status",
        ),
        CheckConstraint("priority BETWEEN 1 AND 10", name="ck_waitlist_priority"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_waitlist_day_of_week"),
        Index(
            "ix_waitlist_pattern",
            "teacher_id",
            "day_of_week",
            "start_time",
            "end_time",
        ),
    )

    @property
    def pattern_key(self) -> tuple:
        return (self.teacher_id, self.day_of_week, self.start_time, self.end_time)
