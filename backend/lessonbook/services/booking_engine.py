# backend/lessonbook/services/booking_engine.py
"""
Booking Transaction Engine

Orchestrates the ledger and the slot registry so that a booking is all or
nothing: the slot claim, the Booking row and the credit deduction commit
together or not at all.

The loser of a race for the same slot sees SlotUnavailable (or
BookingConflict when the slot changed without being taken) and is never
charged. Nothing here retries; callers decide what to do with a conflict.

Domain events are published after commit. Publishing never affects the
outcome of the operation that produced the event.
"""

from dataclasses import dataclass
from datetime import date, time, timedelta
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AccountInactiveException,
    AlreadyCancelledException,
    BookingNotCancellableException,
    BookingNotFoundException,
    CancellationWindowPassedException,
    ConflictException,
    DomainException,
    InsufficientCreditsException,
    NoCreditAccountException,
    ValidationException,
)
from ..core.timezone_utils import slot_today
from ..events import EventPublisher
from ..events.booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingNoShow,
)
from ..models.booking import Booking, BookingStatus
from ..models.credit import ReferenceType, TransactionType
from ..models.schedule import ScheduleSlot, SlotStatus
from ..models.waitlist import WaitlistStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService, Clock
from .credit_ledger_service import CreditLedgerService, to_hours
from .slot_registry_service import SlotRegistryService

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class BookingResult:
    booking_id: str
    schedule_slot_id: str
    date: date
    start_time: time
    end_time: time
    credits_deducted: Decimal
    remaining_credits: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "schedule_slot_id": self.schedule_slot_id,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "credits_deducted": self.credits_deducted,
            "remaining_credits": self.remaining_credits,
        }


@dataclass(frozen=True)
class CancellationResult:
    booking_id: str
    refunded: Decimal
    remaining_credits: Decimal
    relisted_slot_id: Optional[str] = None


class BookingTransactionEngine(BaseService):
    """Service for atomic book / cancel / complete and the no-show sweep."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        *,
        ledger: Optional[CreditLedgerService] = None,
        registry: Optional[SlotRegistryService] = None,
        publisher: Optional[EventPublisher] = None,
        waitlist=None,
    ):
        super().__init__(db, clock)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.slot_repository = RepositoryFactory.create_schedule_slot_repository(db)
        self.waitlist_repository = RepositoryFactory.create_waitlist_repository(db)
        self.transaction_repository = RepositoryFactory.create_credit_transaction_repository(db)
        self.ledger = ledger or CreditLedgerService(db, self.clock)
        self.registry = registry or SlotRegistryService(db, self.clock)
        self.publisher = publisher or EventPublisher()
        self._waitlist = waitlist

    @property
    def waitlist(self):
        if self._waitlist is None:
            from .waitlist_service import WaitlistService

            self._waitlist = WaitlistService(
                self.db, self.clock, engine=self, publisher=self.publisher
            )
        return self._waitlist

    # Reads

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_with_slot(booking_id)
        if booking is None:
            raise BookingNotFoundException(booking_id)
        return booking

    def bookings_for_student(
        self, student_id: str, teacher_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[Booking]:
        return self.booking_repository.list_for_student(student_id, teacher_id, status)

    def bookings_for_teacher(self, teacher_id: str, status: Optional[str] = None) -> List[Booking]:
        return self.booking_repository.list_for_teacher(teacher_id, status)

    def debit_for(self, slot: ScheduleSlot) -> Decimal:
        """Hours charged for one booking of ``slot``."""
        hours = to_hours(settings.booking_debit_hours)
        if settings.bill_by_duration:
            hours = to_hours(hours * Decimal(slot.duration_minutes) / Decimal(60))
        return hours

    # Book

    @BaseService.measure_operation("book_slot")
    def book(
        self,
        slot_id: str,
        student_id: str,
        notes: Optional[str] = None,
        waitlist_entry_id: Optional[str] = None,
    ) -> BookingResult:
        """
        Book ``slot_id`` for ``student_id`` and debit their credit account.

        Raises:
            SlotNotFoundException, SlotUnavailableException, SlotInPastException,
            NoCreditAccountException, AccountInactiveException,
            InsufficientCreditsException, BookingConflictException
        """
        try:
            with self.transaction():
                slot = self.registry.get_slot(slot_id, fresh=True)
                teacher_id = slot.teacher_id

                account = self.ledger.find_account(student_id, teacher_id)
                if account is None:
                    raise NoCreditAccountException(student_id, teacher_id)
                if not account.is_active:
                    raise AccountInactiveException(account.id)

                self.registry.check_bookable(slot)
                self.registry.check_not_held(slot, student_id)
                debit = self.debit_for(slot)
                balance = to_hours(account.balance_hours or 0)
                if balance < debit:
                    raise InsufficientCreditsException(required=debit, available=balance)

                seats_left = self.registry.open_seats(slot) - 1
                occupied = self.registry.claim(slot, student_id)
                booking = self.booking_repository.create(
                    schedule_slot_id=slot_id,
                    seat_slot_id=occupied.id if occupied.id != slot_id else None,
                    student_id=student_id,
                    teacher_id=teacher_id,
                    credit_account_id=account.id,
                    status=BookingStatus.CONFIRMED.value,
                    credits_deducted=debit,
                    notes=notes,
                    waitlist_entry_id=waitlist_entry_id,
                    booked_at=self.now(),
                )
                entry = self.ledger.record(
                    account,
                    TransactionType.DEDUCTION,
                    debit,
                    f"Lesson on {slot.date.isoformat()} at {slot.start_time.strftime('%H:%M')}",
                    reference_type=ReferenceType.BOOKING.value,
                    reference_id=booking.id,
                    performed_by=student_id,
                    insufficient_error=InsufficientCreditsException,
                )
                self._close_waitlist_entries(student_id, slot, waitlist_entry_id)
                if seats_left <= 0:
                    self.waitlist.withdraw_offers(slot_id)

                result = BookingResult(
                    booking_id=booking.id,
                    schedule_slot_id=slot_id,
                    date=slot.date,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    credits_deducted=debit,
                    remaining_credits=entry.balance_after,
                )
        except DomainException as exc:
            prometheus_metrics.record_booking_outcome(exc.code.lower())
            self.logger.info(
                "Booking rejected",
                extra={"slot_id": slot_id, "student_id": student_id, "code": exc.code},
            )
            raise

        prometheus_metrics.record_booking_outcome("booked")
        self.log_operation(
            "booking_created",
            booking_id=result.booking_id,
            slot_id=slot_id,
            student_id=student_id,
            remaining_credits=str(result.remaining_credits),
        )
        self.publisher.publish(
            BookingCreated(
                booking_id=result.booking_id,
                schedule_slot_id=slot_id,
                student_id=student_id,
                teacher_id=teacher_id,
                date=result.date,
                start_time=result.start_time,
                end_time=result.end_time,
                remaining_credits=float(result.remaining_credits),
                created_at=self.now(),
            )
        )
        return result

    def _close_waitlist_entries(
        self, student_id: str, slot: ScheduleSlot, waitlist_entry_id: Optional[str]
    ) -> None:
        entries = []
        if waitlist_entry_id:
            entry = self.waitlist_repository.get_by_id(waitlist_entry_id)
            if entry is not None:
                entries.append(entry)
        match = self.waitlist_repository.active_for_student(
            student_id,
            slot.teacher_id,
            slot.date.weekday(),
            slot.start_time,
            slot.end_time,
            preferred_date=slot.date,
        )
        if match is not None and match not in entries:
            entries.append(match)
        for entry in entries:
            entry.status = WaitlistStatus.BOOKED.value
            entry.position = None
        if entries:
            self.db.flush()

    # Cancel

    @BaseService.measure_operation("cancel_booking")
    def cancel(
        self,
        booking_id: str,
        *,
        actor_role: str,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> CancellationResult:
        """
        Cancel a confirmed booking and refund its deduction in full.

        Students must cancel at least ``cancellation_notice_hours`` ahead.
        Teachers and the system may cancel until the lesson starts. The
        freed slot is relisted (single-seat) and offered to the waitlist.
        """
        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True, fresh=True)
            if booking is None:
                raise BookingNotFoundException(booking_id)
            if booking.status == BookingStatus.CANCELLED.value:
                raise AlreadyCancelledException(booking_id)
            if booking.status != BookingStatus.CONFIRMED.value:
                raise BookingNotCancellableException(booking_id, booking.status)

            slot = self.registry.get_slot(booking.occupied_slot_id, fresh=True)
            hours_until_start = (
                self.registry.starts_at(slot) - self.now()
            ).total_seconds() / 3600
            if actor_role == "student" and hours_until_start < settings.cancellation_notice_hours:
                raise CancellationWindowPassedException(
                    settings.cancellation_notice_hours, hours_until_start
                )
            if hours_until_start <= 0:
                raise CancellationWindowPassedException(0, hours_until_start)

            now = self.now()
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = now
            booking.cancelled_by = actor_id
            booking.cancellation_reason = reason
            self.db.flush()

            self.registry.release(slot)

            refund = self._deducted_for(booking.id)
            account = self.ledger.get_account(booking.credit_account_id)
            remaining = to_hours(account.balance_hours or 0)
            if refund > 0:
                remaining = self.ledger.record(
                    account,
                    TransactionType.REFUND,
                    refund,
                    f"Refund for cancelled booking {booking.id}",
                    reference_type=ReferenceType.BOOKING.value,
                    reference_id=booking.id,
                    performed_by=actor_id,
                ).balance_after

            relisted: Optional[ScheduleSlot] = None
            if settings.relist_on_cancel and not slot.is_seat:
                relisted = self.registry.relist(slot)
            if relisted is not None:
                freed_slot_id: Optional[str] = relisted.id
            elif slot.is_seat:
                freed_slot_id = slot.parent_slot_id
            else:
                freed_slot_id = None

            result = CancellationResult(
                booking_id=booking.id,
                refunded=refund,
                remaining_credits=remaining,
                relisted_slot_id=relisted.id if relisted is not None else None,
            )
            student_id = booking.student_id
            teacher_id = booking.teacher_id

        prometheus_metrics.record_booking_outcome("cancelled")
        self.log_operation(
            "booking_cancelled",
            booking_id=booking_id,
            actor_role=actor_role,
            actor_id=actor_id,
            refunded=str(refund),
            relisted_slot_id=result.relisted_slot_id,
        )
        self.publisher.publish(
            BookingCancelled(
                booking_id=booking_id,
                student_id=student_id,
                teacher_id=teacher_id,
                cancelled_by=actor_id,
                cancelled_at=now,
                refund_hours=float(refund),
                relisted_slot_id=result.relisted_slot_id,
            )
        )

        if freed_slot_id is not None:
            try:
                self.waitlist.on_slot_freed(freed_slot_id)
            except DomainException as exc:
                # The cancellation has committed; the freed slot stays open for direct booking
                self.logger.warning(
                    "Waitlist promotion failed after cancellation",
                    extra={"booking_id": booking_id, "slot_id": freed_slot_id, "code": exc.code},
                )
        return result

    def _deducted_for(self, booking_id: str) -> Decimal:
        rows = self.transaction_repository.find_for_reference(
            ReferenceType.BOOKING.value, booking_id, TransactionType.DEDUCTION.value
        )
        return to_hours(sum((abs(Decimal(row.hours_amount)) for row in rows), Decimal("0")))

    # Complete

    @BaseService.measure_operation("complete_booking")
    def complete(self, booking_id: str, performed_by: Optional[str] = None) -> Booking:
        """Teacher marks a lesson as taught; allowed once it has started."""
        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True, fresh=True)
            if booking is None:
                raise BookingNotFoundException(booking_id)
            if booking.status == BookingStatus.CANCELLED.value:
                raise AlreadyCancelledException(booking_id)
            if booking.status != BookingStatus.CONFIRMED.value:
                raise BookingNotCancellableException(booking_id, booking.status)

            slot = self.registry.get_slot(booking.occupied_slot_id, fresh=True)
            if not self.registry.has_started(slot):
                raise ValidationException(
                    "A lesson can only be completed once it has started",
                    code="LESSON_NOT_STARTED",
                    details={"booking_id": booking_id},
                )
            now = self.now()
            booking.status = BookingStatus.COMPLETED.value
            booking.completed_at = now
            self.db.flush()
            self.registry.complete(slot)

        prometheus_metrics.record_booking_outcome("completed")
        self.log_operation("booking_completed", booking_id=booking_id, performed_by=performed_by)
        self.publisher.publish(BookingCompleted(booking_id=booking_id, completed_at=now))
        return booking

    # No-show sweep

    @BaseService.measure_operation("sweep_no_shows")
    def sweep_no_shows(self) -> int:
        """
        Move booked slots whose end plus grace has passed to no_show.

        The credit is forfeited: no refund is written, and a zero-hour
        adjustment records the sweep in the ledger. Each slot is its own
        unit, so one conflict does not stop the sweep.
        """
        now = self.now()
        grace = timedelta(minutes=settings.no_show_grace_minutes)
        swept = 0

        for candidate in self.slot_repository.booked_on_or_before(slot_today(now)):
            if self.registry.ends_at(candidate) + grace > now:
                continue
            slot_id = candidate.id
            try:
                with self.transaction():
                    slot = self.registry.get_slot(slot_id, fresh=True)
                    if slot.status != SlotStatus.BOOKED.value:
                        continue
                    booking = self.booking_repository.confirmed_for_slot(slot_id)
                    self.registry.mark_no_show(slot)
                    event = None
                    if booking is not None:
                        booking.status = BookingStatus.NO_SHOW.value
                        self.db.flush()
                        self.ledger.record(
                            self.ledger.get_account(booking.credit_account_id),
                            TransactionType.ADJUSTMENT,
                            0,
                            f"No-show for booking {booking.id}; credit forfeited",
                            reference_type=ReferenceType.NO_SHOW_SWEEP.value,
                            reference_id=booking.id,
                            performed_by=SYSTEM_ACTOR,
                        )
                        event = BookingNoShow(
                            booking_id=booking.id,
                            student_id=booking.student_id,
                            teacher_id=booking.teacher_id,
                            swept_at=now,
                        )
            except ConflictException as exc:
                self.logger.info(
                    "Skipping slot changed during no-show sweep",
                    extra={"slot_id": slot_id, "code": exc.code},
                )
                continue

            swept += 1
            if event is not None:
                self.publisher.publish(event)

        prometheus_metrics.record_housekeeping("sweep_no_shows", swept)
        if swept:
            self.log_operation("no_shows_swept", count=swept)
        return swept
