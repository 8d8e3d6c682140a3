"""BookingTransactionEngine: atomic book, cancel, complete and the no-show sweep."""

from datetime import time
from decimal import Decimal

import pytest

from lessonbook.core.config import settings
from lessonbook.core.exceptions import (
    AccountInactiveException,
    AlreadyCancelledException,
    BookingNotCancellableException,
    BookingNotFoundException,
    CancellationWindowPassedException,
    InsufficientCreditsException,
    NoCreditAccountException,
    SlotInPastException,
    SlotNotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from lessonbook.models.booking import Booking
from lessonbook.models.credit import CreditTransaction
from lessonbook.models.schedule import SlotStatus
from tests.helpers import (
    LESSON_END,
    LESSON_START,
    OTHER_STUDENT_ID,
    STUDENT_ID,
    TEACHER_ID,
    TUESDAY,
    published_types,
)


def balance(services, account_id: str) -> Decimal:
    return services.ledger.get_balance(account_id).balance_hours


class TestBook:
    def test_books_and_debits_atomically(self, services, funded_account, tuesday_slot, sender):
        result = services.engine.book(tuesday_slot.id, STUDENT_ID, notes="Scales")

        assert result.credits_deducted == Decimal("1.00")
        assert result.remaining_credits == Decimal("9.00")
        assert (result.date, result.start_time, result.end_time) == (
            TUESDAY,
            LESSON_START,
            LESSON_END,
        )

        slot = services.registry.get_slot(tuesday_slot.id, fresh=True)
        assert slot.status == SlotStatus.BOOKED.value
        assert slot.booked_by == STUDENT_ID

        booking = services.engine.get_booking(result.booking_id)
        assert booking.status == "confirmed"
        assert booking.notes == "Scales"
        assert booking.credit_account_id == funded_account

        deductions = services.ledger.transaction_repository.find_for_reference(
            "booking", result.booking_id, "deduction"
        )
        assert [row.hours_amount for row in deductions] == [Decimal("-1.00")]
        assert published_types(sender) == ["BookingCreated"]

    def test_missing_slot(self, services, funded_account):
        with pytest.raises(SlotNotFoundException):
            services.engine.book("01HZZZZZZZZZZZZZZZZZZZZZZZ", STUDENT_ID)

    def test_requires_credit_account(self, services, tuesday_slot, db):
        with pytest.raises(NoCreditAccountException):
            services.engine.book(tuesday_slot.id, OTHER_STUDENT_ID)

        assert db.query(Booking).count() == 0
        assert services.registry.get_slot(tuesday_slot.id, fresh=True).status == "available"

    def test_inactive_account_cannot_book(self, services, funded_account, tuesday_slot):
        services.ledger.deactivate(funded_account)
        with pytest.raises(AccountInactiveException):
            services.engine.book(tuesday_slot.id, STUDENT_ID)

    def test_insufficient_credits_leave_nothing_behind(self, services, tuesday_slot, db):
        account_id = services.ledger.purchase(OTHER_STUDENT_ID, TEACHER_ID, "0.5").account_id

        with pytest.raises(InsufficientCreditsException) as exc_info:
            services.engine.book(tuesday_slot.id, OTHER_STUDENT_ID)

        assert exc_info.value.code == "INSUFFICIENT_CREDITS"
        assert exc_info.value.status_code == 400
        assert balance(services, account_id) == Decimal("0.50")
        assert db.query(Booking).count() == 0
        assert services.registry.get_slot(tuesday_slot.id, fresh=True).status == "available"

    def test_second_booker_is_refused_and_not_charged(self, services, funded_account, tuesday_slot):
        other_account = services.ledger.purchase(OTHER_STUDENT_ID, TEACHER_ID, 3).account_id
        services.engine.book(tuesday_slot.id, STUDENT_ID)

        with pytest.raises(SlotUnavailableException) as exc_info:
            services.engine.book(tuesday_slot.id, OTHER_STUDENT_ID)

        assert exc_info.value.status_code == 409
        assert balance(services, other_account) == Decimal("3.00")

    def test_started_slot_cannot_be_booked(self, services, funded_account, tuesday_slot, clock):
        clock.advance(hours=29)
        with pytest.raises(SlotInPastException):
            services.engine.book(tuesday_slot.id, STUDENT_ID)
        assert balance(services, funded_account) == Decimal("10.00")

    def test_single_credit_covers_exactly_one_booking(self, services, tuesday_slot):
        account_id = services.ledger.purchase(OTHER_STUDENT_ID, TEACHER_ID, 1).account_id
        later = services.registry.create_slot(TEACHER_ID, TUESDAY, time(16), time(17))

        services.engine.book(tuesday_slot.id, OTHER_STUDENT_ID)
        with pytest.raises(InsufficientCreditsException):
            services.engine.book(later.id, OTHER_STUDENT_ID)

        assert balance(services, account_id) == Decimal("0.00")
        assert services.registry.get_slot(later.id, fresh=True).status == "available"

    def test_bill_by_duration(self, services, funded_account, monkeypatch):
        monkeypatch.setattr(settings, "bill_by_duration", True)
        slot = services.registry.create_slot(TEACHER_ID, TUESDAY, time(10), time(11, 30))

        result = services.engine.book(slot.id, STUDENT_ID)

        assert result.credits_deducted == Decimal("1.50")
        assert result.remaining_credits == Decimal("8.50")


class TestGroupSlots:
    def test_seats_fill_up(self, services, funded_account):
        group = services.registry.create_slot(
            TEACHER_ID, TUESDAY, time(10), time(11), max_students=2
        )
        services.ledger.purchase(OTHER_STUDENT_ID, TEACHER_ID, 2)
        services.ledger.purchase("student-3", TEACHER_ID, 2)

        first = services.engine.book(group.id, STUDENT_ID)
        services.engine.book(group.id, OTHER_STUDENT_ID)
        with pytest.raises(SlotUnavailableException):
            services.engine.book(group.id, "student-3")

        parent = services.registry.get_slot(group.id, fresh=True)
        assert parent.status == SlotStatus.AVAILABLE.value
        assert services.registry.seats_taken(parent) == 2
        booking = services.engine.get_booking(first.booking_id)
        assert booking.schedule_slot_id == group.id
        assert booking.seat_slot_id is not None

    def test_cancelled_seat_frees_capacity(self, services, funded_account):
        group = services.registry.create_slot(
            TEACHER_ID, TUESDAY, time(10), time(11), max_students=2
        )
        services.ledger.purchase(OTHER_STUDENT_ID, TEACHER_ID, 2)
        services.ledger.purchase("student-3", TEACHER_ID, 2)
        first = services.engine.book(group.id, STUDENT_ID)
        services.engine.book(group.id, OTHER_STUDENT_ID)

        result = services.engine.cancel(
            first.booking_id, actor_role="student", actor_id=STUDENT_ID
        )

        assert result.relisted_slot_id is None
        assert result.refunded == Decimal("1.00")
        services.engine.book(group.id, "student-3")
        assert services.registry.seats_taken(services.registry.get_slot(group.id)) == 2


class TestCancel:
    def test_student_cancel_refunds_and_relists(
        self, services, funded_account, tuesday_slot, sender
    ):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)

        result = services.engine.cancel(
            booked.booking_id, actor_role="student", actor_id=STUDENT_ID, reason="Ill"
        )

        assert result.refunded == Decimal("1.00")
        assert result.remaining_credits == Decimal("10.00")
        assert balance(services, funded_account) == Decimal("10.00")

        booking = services.engine.get_booking(booked.booking_id)
        assert booking.status == "cancelled"
        assert booking.cancelled_by == STUDENT_ID
        assert booking.cancellation_reason == "Ill"

        assert services.registry.get_slot(tuesday_slot.id, fresh=True).status == "cancelled"
        relisted = services.registry.get_slot(result.relisted_slot_id)
        assert relisted.status == SlotStatus.AVAILABLE.value
        assert relisted.relisted_from_id == tuesday_slot.id
        assert published_types(sender) == ["BookingCreated", "BookingCancelled"]

    def test_relisted_slot_is_bookable(self, services, funded_account, tuesday_slot):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        relisted_id = services.engine.cancel(
            booked.booking_id, actor_role="student", actor_id=STUDENT_ID
        ).relisted_slot_id

        services.engine.book(relisted_id, STUDENT_ID)
        assert balance(services, funded_account) == Decimal("9.00")

    def test_relisting_can_be_disabled(self, services, funded_account, tuesday_slot, monkeypatch):
        monkeypatch.setattr(settings, "relist_on_cancel", False)
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)

        result = services.engine.cancel(
            booked.booking_id, actor_role="teacher", actor_id=TEACHER_ID
        )
        assert result.relisted_slot_id is None

    def test_refund_matches_original_deduction(
        self, services, funded_account, tuesday_slot, monkeypatch
    ):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        monkeypatch.setattr(settings, "booking_debit_hours", 2.0)

        result = services.engine.cancel(
            booked.booking_id, actor_role="student", actor_id=STUDENT_ID
        )
        assert result.refunded == Decimal("1.00")

    def test_student_notice_window(self, services, funded_account, tuesday_slot, clock):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        clock.advance(hours=6)  # 23 hours before the lesson

        with pytest.raises(CancellationWindowPassedException) as exc_info:
            services.engine.cancel(booked.booking_id, actor_role="student", actor_id=STUDENT_ID)
        assert exc_info.value.details["required_hours"] == 24

        result = services.engine.cancel(
            booked.booking_id, actor_role="teacher", actor_id=TEACHER_ID
        )
        assert result.refunded == Decimal("1.00")

    def test_nobody_cancels_after_start(self, services, funded_account, tuesday_slot, clock):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        clock.advance(hours=29, minutes=5)

        with pytest.raises(CancellationWindowPassedException):
            services.engine.cancel(booked.booking_id, actor_role="teacher", actor_id=TEACHER_ID)

    def test_double_cancel(self, services, funded_account, tuesday_slot):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        services.engine.cancel(booked.booking_id, actor_role="student", actor_id=STUDENT_ID)

        with pytest.raises(AlreadyCancelledException):
            services.engine.cancel(booked.booking_id, actor_role="student", actor_id=STUDENT_ID)
        assert balance(services, funded_account) == Decimal("10.00")

    def test_unknown_booking(self, services):
        with pytest.raises(BookingNotFoundException):
            services.engine.cancel("01HZZZZZZZZZZZZZZZZZZZZZZZ", actor_role="system", actor_id="x")


class TestComplete:
    def test_cannot_complete_before_start(self, services, funded_account, tuesday_slot):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        with pytest.raises(ValidationException) as exc_info:
            services.engine.complete(booked.booking_id)
        assert exc_info.value.code == "LESSON_NOT_STARTED"

    def test_complete_is_terminal(self, services, funded_account, tuesday_slot, clock, sender):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        clock.advance(hours=29, minutes=30)

        booking = services.engine.complete(booked.booking_id, performed_by=TEACHER_ID)

        assert booking.status == "completed"
        assert services.registry.get_slot(tuesday_slot.id, fresh=True).status == "completed"
        assert "BookingCompleted" in published_types(sender)
        with pytest.raises(BookingNotCancellableException):
            services.engine.cancel(booked.booking_id, actor_role="teacher", actor_id=TEACHER_ID)
        # completion keeps the credit spent
        assert balance(services, funded_account) == Decimal("9.00")


class TestNoShowSweep:
    def test_sweeps_after_grace_and_forfeits_credit(
        self, services, funded_account, tuesday_slot, clock, db, sender
    ):
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)

        clock.advance(hours=30, minutes=20)  # 15:20, inside the grace period
        assert services.engine.sweep_no_shows() == 0

        clock.advance(minutes=11)
        assert services.engine.sweep_no_shows() == 1
        assert services.engine.sweep_no_shows() == 0

        assert services.engine.get_booking(booked.booking_id).status == "no_show"
        assert services.registry.get_slot(tuesday_slot.id, fresh=True).status == "no_show"
        assert balance(services, funded_account) == Decimal("9.00")
        marker = (
            db.query(CreditTransaction)
            .filter(CreditTransaction.reference_type == "no_show_sweep")
            .one()
        )
        assert marker.hours_amount == Decimal("0")
        assert marker.reference_id == booked.booking_id
        assert published_types(sender)[-1] == "BookingNoShow"
        assert services.ledger.verify_integrity(funded_account)["consistent"] is True

    def test_open_and_completed_slots_are_left_alone(
        self, services, funded_account, tuesday_slot, clock
    ):
        services.registry.create_slot(TEACHER_ID, TUESDAY, time(10), time(11))
        booked = services.engine.book(tuesday_slot.id, STUDENT_ID)
        clock.advance(hours=29, minutes=30)
        services.engine.complete(booked.booking_id)

        clock.advance(days=1)
        assert services.engine.sweep_no_shows() == 0


class TestLedgerIntegrityAcrossFlows:
    def test_balance_always_matches_log(self, services, funded_account, tuesday_slot, clock):
        later = services.registry.create_slot(TEACHER_ID, TUESDAY, time(17), time(18))
        first = services.engine.book(tuesday_slot.id, STUDENT_ID)
        services.engine.book(later.id, STUDENT_ID)
        services.engine.cancel(first.booking_id, actor_role="student", actor_id=STUDENT_ID)
        services.ledger.adjust(funded_account, "-0.5", "Late payment fee")

        report = services.ledger.verify_integrity(funded_account)
        assert report["consistent"] is True
        assert report["stored_balance"] == Decimal("8.50")
