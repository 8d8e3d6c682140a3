"""Booking request and response schemas."""
import datetime as dt
from datetime import datetime, time
from typing import Optional

from pydantic import Field

from .base import Hours, StandardizedModel, StrictModel


class BookingCreate(StrictModel):
    token: Optional[str] = Field(None, description="Share token; omit when using a bearer token")
    schedule_slot_id: str = Field(..., min_length=26, max_length=26)
    notes: Optional[str] = Field(None, max_length=1000)


class BookingCreateResponse(StandardizedModel):
    booking_id: str
    schedule_slot_id: str
    date: dt.date
    start_time: time
    end_time: time
    credits_deducted: Hours
    remaining_credits: Hours


class BookingCancel(StrictModel):
    token: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)


class BookingCancelResponse(StandardizedModel):
    booking_id: str
    refunded: Hours
    remaining_credits: Hours
    relisted_slot_id: Optional[str] = None


class BookingResponse(StandardizedModel):
    id: str
    schedule_slot_id: Optional[str] = None
    seat_slot_id: Optional[str] = None
    student_id: str
    teacher_id: str
    status: str
    credits_deducted: Hours
    notes: Optional[str] = None
    booked_at: datetime
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
