"""Booking and waitlist domain events."""
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is committed."""

    booking_id: str
    schedule_slot_id: str
    student_id: str
    teacher_id: str
    date: date
    start_time: time
    end_time: time
    remaining_credits: float
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled and refunded."""

    booking_id: str
    student_id: str
    teacher_id: str
    cancelled_by: str
    cancelled_at: datetime
    refund_hours: float
    relisted_slot_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCompleted:
    booking_id: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingNoShow:
    """Fired by the no-show sweep. The credit is forfeited, not refunded."""

    booking_id: str
    student_id: str
    teacher_id: str
    swept_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WaitlistPromoted:
    """Fired when a waitlisted student is offered a freed slot."""

    waitlist_entry_id: str
    student_id: str
    teacher_id: str
    schedule_slot_id: str
    respond_by: datetime
    auto_booked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
