from .booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingNoShow,
    WaitlistPromoted,
)
from .publisher import EventPublisher

__all__ = [
    "BookingCancelled",
    "BookingCompleted",
    "BookingCreated",
    "BookingNoShow",
    "EventPublisher",
    "WaitlistPromoted",
]
