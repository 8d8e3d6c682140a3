# backend/lessonbook/models/__init__.py
"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""

from .booking import Booking, BookingStatus
from .credit import CreditAccount, CreditTransaction, ReferenceType, TransactionType
from .schedule import BlockedTime, ScheduleSlot, SlotStatus, TimeSlotTemplate
from .share_token import ShareToken, TokenAuditLog
from .waitlist import WaitlistEntry, WaitlistStatus

__all__ = [
    "BlockedTime",
    "Booking",
    "BookingStatus",
    "CreditAccount",
    "CreditTransaction",
    "ReferenceType",
    "ScheduleSlot",
    "ShareToken",
    "SlotStatus",
    "TimeSlotTemplate",
    "TokenAuditLog",
    "TransactionType",
    "WaitlistEntry",
    "WaitlistStatus",
]
