# backend/lessonbook/models/schedule.py
"""
Availability models: recurring templates, concrete schedule slots and
blocked time.

ScheduleSlot.status follows a fixed state machine:

    available -> booked -> completed | no_show
    available -> cancelled
    booked    -> cancelled

completed, cancelled and no_show are terminal.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


SLOT_TRANSITIONS = {
    SlotStatus.AVAILABLE: {SlotStatus.BOOKED, SlotStatus.CANCELLED},
    SlotStatus.BOOKED: {SlotStatus.COMPLETED, SlotStatus.NO_SHOW, SlotStatus.CANCELLED},
    SlotStatus.COMPLETED: set(),
    SlotStatus.CANCELLED: set(),
    SlotStatus.NO_SHOW: set(),
}

# Statuses in which a slot (or group seat) holds a student
OCCUPIED_STATUSES = (SlotStatus.BOOKED.value, SlotStatus.COMPLETED.value, SlotStatus.NO_SHOW.value)


class TimeSlotTemplate(Base):
    """Recurring weekly availability rule owned by a teacher."""

    __tablename__ = "time_slot_templates"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(64), nullable=False, index=True)
    # 0 = Monday ... 6 = Sunday
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    subject = Column(String(100), nullable=True)
    max_students = Column(Integer, nullable=False, default=1)
    is_recurring = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    recurrence_end_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_template_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_template_time_order"),
        CheckConstraint(
            "duration_minutes BETWEEN 15 AND 480", name="ck_template_duration_range"
        ),
        CheckConstraint("max_students >= 1", name="ck_template_max_students"),
    )


class ScheduleSlot(Base):
    """
    A concrete, dated, bookable window.

    ``booked_by`` is set exactly when status is booked, completed or
    no_show. For group slots (max_students > 1) the parent row stays
    available and each booked seat is a child row pointing at it through
    ``parent_slot_id``.
    """

    __tablename__ = "schedule_slots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    subject = Column(String(100), nullable=True)

    status = Column(String(20), nullable=False, default=SlotStatus.AVAILABLE.value, index=True)
    max_students = Column(Integer, nullable=False, default=1)
    booked_by = Column(String(64), nullable=True, index=True)

    parent_template_id = Column(
        String(26), ForeignKey("time_slot_templates.id", ondelete="SET NULL"), nullable=True
    )
    parent_slot_id = Column(String(26), ForeignKey("schedule_slots.id"), nullable=True, index=True)
    relisted_from_id = Column(String(26), ForeignKey("schedule_slots.id"), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    template = relationship("TimeSlotTemplate", foreign_keys=[parent_template_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'booked', 'completed', 'cancelled', 'no_show')",
            name="ck_schedule_slot_status",
        ),
        CheckConstraint("start_time < end_time", name="ck_schedule_slot_time_order"),
        CheckConstraint("max_students >= 1", name="ck_schedule_slot_max_students"),
        CheckConstraint(
            "(booked_by IS NULL AND status IN ('available', 'cancelled')) "
            "OR (booked_by IS NOT NULL AND status IN ('booked', 'completed', 'no_show'))",
            name="ck_schedule_slot_booked_by",
        ),
        Index("ix_schedule_slots_teacher_date", "teacher_id", "date"),
    )

    @property
    def is_group(self) -> bool:
        return (self.max_students or 1) > 1

    @property
    def is_seat(self) -> bool:
        return self.parent_slot_id is not None

    def __repr__(self) -> str:
        return (
            f"<ScheduleSlot {self.id} {self.date} {self.start_time}-{self.end_time} "
            f"status={self.status}>"
        )


class BlockedTime(Base):
    """A window the teacher has explicitly marked unavailable."""

    __tablename__ = "blocked_times"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_blocked_time_order"),
        Index("ix_blocked_times_teacher_date", "teacher_id", "date"),
    )
