# backend/lessonbook/models/booking.py
"""
Booking model.

A Booking is the confirmed assignment of one student to one schedule
slot (or one seat of a group slot). The row keeps its history after the
slot changes status or is deleted.
"""

from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    schedule_slot_id = Column(
        String(26), ForeignKey("schedule_slots.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Group bookings point at the seat row; schedule_slot_id is the advertised slot
    seat_slot_id = Column(
        String(26), ForeignKey("schedule_slots.id", ondelete="SET NULL"), nullable=True
    )
    student_id = Column(String(64), nullable=False, index=True)
    teacher_id = Column(String(64), nullable=False, index=True)
    credit_account_id = Column(String(26), ForeignKey("credit_accounts.id"), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    credits_deducted = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)
    waitlist_entry_id = Column(String(26), nullable=True)

    booked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    slot = relationship("ScheduleSlot", foreign_keys=[schedule_slot_id])
    seat = relationship("ScheduleSlot", foreign_keys=[seat_slot_id])
    credit_account = relationship("CreditAccount")

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'completed', 'cancelled', 'no_show')",
            name="ck_booking_status",
        ),
        CheckConstraint("credits_deducted >= 0", name="ck_booking_credits_deducted"),
        Index("ix_bookings_student_teacher", "student_id", "teacher_id"),
    )

    @property
    def occupied_slot_id(self) -> str:
        """The slot row whose status tracks this booking."""
        return self.seat_slot_id or self.schedule_slot_id

    def __repr__(self) -> str:
        return f"<Booking {self.id} slot={self.schedule_slot_id} status={self.status}>"
