# backend/lessonbook/core/exceptions.py
"""
Domain-specific exceptions for the booking and credit ledger engine.

Every exception carries a machine-readable ``code`` distinct from its
human-readable message. Callers branch on the code, never on the text.
"""

from typing import Any, Dict, Optional

from fastapi import status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when a concurrent or overlapping state change is detected."""

    status_code = status.HTTP_409_CONFLICT


class PolicyException(DomainException):
    """Business-rule violation that is reported as a 400 and is not retryable."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when the caller lacks the capability for an action."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        code: Optional[str] = "FORBIDDEN",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details)


class ServiceException(DomainException):
    """Raised when a service operation fails."""


# Slots


class SlotNotFoundException(NotFoundException):
    def __init__(self, slot_id: str):
        super().__init__(
            message="Schedule slot not found",
            code="SLOT_NOT_FOUND",
            details={"schedule_slot_id": slot_id},
        )


class SlotUnavailableException(ConflictException):
    """Raised when the slot is no longer open for booking."""

    def __init__(self, slot_id: str, current_status: Optional[str] = None):
        details: Dict[str, Any] = {"schedule_slot_id": slot_id}
        if current_status:
            details["status"] = current_status
        super().__init__(
            message="This time slot is no longer available",
            code="SLOT_UNAVAILABLE",
            details=details,
        )


class SlotInPastException(PolicyException):
    def __init__(self, slot_id: str):
        super().__init__(
            message="Cannot book a slot that has already started",
            code="SLOT_IN_PAST",
            details={"schedule_slot_id": slot_id},
        )


class InvalidSlotTransitionException(ConflictException):
    def __init__(self, slot_id: str, current: str, target: str):
        super().__init__(
            message=f"Slot cannot move from {current} to {target}",
            code="INVALID_TRANSITION",
            details={"schedule_slot_id": slot_id, "from": current, "to": target},
        )


class BookingConflictException(ConflictException):
    """Raised when a concurrent change to the slot or ledger was detected."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class TimeConflictException(ConflictException):
    """Raised when availability windows overlap existing availability."""

    def __init__(self, conflicts: list, message: Optional[str] = None):
        super().__init__(
            message=message or "Conflicts detected with existing availability",
            code="TIME_CONFLICT",
            details={"conflicts": conflicts},
        )


class UnresolvableConflictException(ConflictException):
    def __init__(self, window: Dict[str, Any]):
        super().__init__(
            message="No non-conflicting adjustment exists within the allowed range",
            code="UNRESOLVABLE_CONFLICT",
            details={"window": window},
        )


# Bookings


class BookingNotFoundException(NotFoundException):
    def __init__(self, booking_id: str):
        super().__init__(
            message="Booking not found",
            code="BOOKING_NOT_FOUND",
            details={"booking_id": booking_id},
        )


class CancellationWindowPassedException(PolicyException):
    def __init__(self, required_hours: int, hours_until_start: float):
        super().__init__(
            message=f"Bookings must be cancelled at least {required_hours} hours in advance",
            code="CANCELLATION_WINDOW_PASSED",
            details={
                "required_hours": required_hours,
                "hours_until_start": round(hours_until_start, 2),
            },
        )


class AlreadyCancelledException(ConflictException):
    def __init__(self, booking_id: str):
        super().__init__(
            message="Booking is already cancelled",
            code="ALREADY_CANCELLED",
            details={"booking_id": booking_id},
        )


class BookingNotCancellableException(ConflictException):
    def __init__(self, booking_id: str, current_status: str):
        super().__init__(
            message=f"A {current_status} booking cannot be changed",
            code="BOOKING_NOT_CANCELLABLE",
            details={"booking_id": booking_id, "status": current_status},
        )


# Credits


class NoCreditAccountException(PolicyException):
    def __init__(self, student_id: str, teacher_id: str):
        super().__init__(
            message="No credit account found for this student and teacher",
            code="NO_CREDIT_ACCOUNT",
            details={"student_id": student_id, "teacher_id": teacher_id},
        )


class AccountInactiveException(PolicyException):
    def __init__(self, account_id: str):
        super().__init__(
            message="Credit account is inactive",
            code="ACCOUNT_INACTIVE",
            details={"account_id": account_id},
        )


class InsufficientBalanceException(PolicyException):
    """Raised when a debit would take the balance below zero."""

    def __init__(
        self,
        required: Any,
        available: Any,
        code: str = "INSUFFICIENT_BALANCE",
    ):
        super().__init__(
            message="Insufficient credit balance",
            code=code,
            details={"required_hours": str(required), "available_hours": str(available)},
        )


class InsufficientCreditsException(InsufficientBalanceException):
    """Booking-facing variant of the balance guard."""

    def __init__(self, required: Any, available: Any):
        super().__init__(required, available, code="INSUFFICIENT_CREDITS")


class InvalidAmountException(PolicyException):
    def __init__(self, transaction_type: str, hours: Any):
        super().__init__(
            message=f"Invalid hours amount for {transaction_type}",
            code="INVALID_AMOUNT",
            details={"transaction_type": transaction_type, "hours": str(hours)},
        )


# Waitlist


class SlotCurrentlyAvailableException(ConflictException):
    def __init__(self, slot_id: str):
        super().__init__(
            message="A matching slot is open right now; book it directly",
            code="SLOT_CURRENTLY_AVAILABLE",
            details={"schedule_slot_id": slot_id, "hint": "book_directly"},
        )


class AlreadyOnWaitlistException(ConflictException):
    def __init__(self, entry_id: str):
        super().__init__(
            message="Student is already on the waitlist for this time",
            code="ALREADY_ON_WAITLIST",
            details={"waitlist_entry_id": entry_id},
        )


class WaitlistEntryNotFoundException(NotFoundException):
    def __init__(self, entry_id: str):
        super().__init__(
            message="Waitlist entry not found",
            code="WAITLIST_ENTRY_NOT_FOUND",
            details={"waitlist_entry_id": entry_id},
        )


# Share tokens


class InvalidTokenException(UnauthorizedException):
    """Raised for unknown, malformed, inactive or exhausted share tokens."""

    def __init__(self) -> None:
        super().__init__(message="Invalid share link", code="INVALID_TOKEN")


class ExpiredTokenException(UnauthorizedException):
    def __init__(self) -> None:
        super().__init__(message="This share link has expired", code="EXPIRED_TOKEN")


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as database connection
    issues, query failures, or constraint violations.
    """


def is_db_pool_exhaustion(exc: Exception) -> bool:
    """Check if an exception indicates DB connection pool exhaustion."""
    error_str = str(exc).lower()
    return "queuepool" in error_str or (
        "timeout" in error_str and ("connection" in error_str or "pool" in error_str)
    )
