"""Bookings racing from separate threads and sessions."""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
import threading
from unittest.mock import Mock

import pytest
from sqlalchemy.orm import sessionmaker

from lessonbook.core.exceptions import (
    BookingConflictException,
    InsufficientCreditsException,
    SlotUnavailableException,
)
from lessonbook.database import Base, create_db_engine, init_db
from lessonbook.events import EventPublisher
from lessonbook.models.booking import Booking
from lessonbook.models.credit import CreditAccount, CreditTransaction
from lessonbook.models.schedule import ScheduleSlot
from lessonbook.services.booking_engine import BookingTransactionEngine
from lessonbook.services.credit_ledger_service import CreditLedgerService
from lessonbook.services.slot_registry_service import SlotRegistryService
from tests.helpers import (
    LESSON_END,
    LESSON_START,
    STUDENT_ID,
    TEACHER_ID,
    TUESDAY,
    WEDNESDAY,
    FrozenClock,
)

RACERS = 5


@pytest.fixture
def file_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def contested(file_factory):
    """One open slot and RACERS students holding exactly one hour each."""
    clock = FrozenClock()
    session = file_factory()
    try:
        slot = SlotRegistryService(session, clock).create_slot(
            TEACHER_ID, TUESDAY, LESSON_START, LESSON_END
        )
        ledger = CreditLedgerService(session, clock)
        students = [f"racer-{n}" for n in range(RACERS)]
        for student_id in students:
            ledger.purchase(student_id, TEACHER_ID, 1)
        return slot.id, students
    finally:
        session.close()


def test_exactly_one_booking_wins(file_factory, contested):
    slot_id, students = contested
    barrier = threading.Barrier(RACERS)

    def attempt(student_id):
        session = file_factory()
        engine = BookingTransactionEngine(
            session, FrozenClock(), publisher=EventPublisher(sender=Mock())
        )
        try:
            barrier.wait(timeout=10)
            return engine.book(slot_id, student_id)
        except (SlotUnavailableException, BookingConflictException) as exc:
            return exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=RACERS) as pool:
        outcomes = list(pool.map(attempt, students))

    winners = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]
    losers = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    assert len(winners) == 1
    assert len(losers) == RACERS - 1
    assert winners[0].remaining_credits == Decimal("0.00")

    session = file_factory()
    try:
        assert session.query(Booking).count() == 1
        deductions = session.query(CreditTransaction).filter(
            CreditTransaction.transaction_type == "deduction"
        )
        assert deductions.count() == 1
    finally:
        session.close()


@pytest.fixture
def stretched(file_factory):
    """Two open slots on different days and one student holding a single hour."""
    clock = FrozenClock()
    session = file_factory()
    try:
        registry = SlotRegistryService(session, clock)
        slot_ids = [
            registry.create_slot(TEACHER_ID, day, LESSON_START, LESSON_END).id
            for day in (TUESDAY, WEDNESDAY)
        ]
        CreditLedgerService(session, clock).purchase(STUDENT_ID, TEACHER_ID, 1)
        return slot_ids
    finally:
        session.close()


def test_one_hour_pays_for_one_of_two_slots(file_factory, stretched):
    barrier = threading.Barrier(len(stretched))

    def attempt(slot_id):
        session = file_factory()
        engine = BookingTransactionEngine(
            session, FrozenClock(), publisher=EventPublisher(sender=Mock())
        )
        try:
            barrier.wait(timeout=10)
            return engine.book(slot_id, STUDENT_ID)
        except (InsufficientCreditsException, BookingConflictException) as exc:
            return exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(stretched)) as pool:
        outcomes = list(pool.map(attempt, stretched))

    winners = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]
    assert len(winners) == 1
    assert winners[0].remaining_credits == Decimal("0.00")

    session = file_factory()
    try:
        assert session.query(Booking).count() == 1
        deductions = session.query(CreditTransaction).filter(
            CreditTransaction.transaction_type == "deduction"
        )
        assert deductions.count() == 1
        account = session.query(CreditAccount).filter_by(student_id=STUDENT_ID).one()
        assert account.balance_hours == Decimal("0.00")
        statuses = sorted(session.get(ScheduleSlot, slot_id).status for slot_id in stretched)
        assert statuses == ["available", "booked"]
    finally:
        session.close()
