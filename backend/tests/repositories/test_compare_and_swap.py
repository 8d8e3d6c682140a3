"""Guarded writes: two sessions racing for the same slot or balance."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from lessonbook.database import Base, create_db_engine, init_db
from lessonbook.models.schedule import SlotStatus
from lessonbook.repositories import RepositoryFactory
from tests.helpers import (
    LESSON_END,
    LESSON_START,
    OTHER_STUDENT_ID,
    STUDENT_ID,
    TEACHER_ID,
    TUESDAY,
)


@pytest.fixture
def file_sessions(tmp_path):
    """Two independent sessions on one SQLite file."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_db(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    first, second = factory(), factory()
    yield first, second
    first.close()
    second.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def slot_id(file_sessions):
    session = file_sessions[0]
    slot = RepositoryFactory.create_schedule_slot_repository(session).create(
        teacher_id=TEACHER_ID,
        date=TUESDAY,
        start_time=LESSON_START,
        end_time=LESSON_END,
        duration_minutes=60,
        status=SlotStatus.AVAILABLE.value,
        version=1,
    )
    session.commit()
    return slot.id


class TestSlotClaim:
    def test_second_claim_on_same_version_loses(self, file_sessions, slot_id):
        first, second = file_sessions
        first_repo = RepositoryFactory.create_schedule_slot_repository(first)
        second_repo = RepositoryFactory.create_schedule_slot_repository(second)
        # both sessions have seen version 1
        assert second_repo.get_by_id(slot_id).version == 1

        assert first_repo.claim(slot_id, 1, STUDENT_ID) is True
        first.commit()
        assert second_repo.claim(slot_id, 1, OTHER_STUDENT_ID) is False
        second.rollback()

        slot = second_repo.get_by_id(slot_id, fresh=True)
        assert slot.booked_by == STUDENT_ID
        assert slot.version == 2

    def test_claim_expires_cached_instance(self, file_sessions, slot_id):
        session = file_sessions[0]
        repo = RepositoryFactory.create_schedule_slot_repository(session)
        slot = repo.get_by_id(slot_id)

        assert repo.claim(slot_id, 1, STUDENT_ID) is True
        assert slot.status == SlotStatus.BOOKED.value

    def test_transition_checks_from_status(self, file_sessions, slot_id):
        repo = RepositoryFactory.create_schedule_slot_repository(file_sessions[0])
        assert repo.transition(slot_id, 1, SlotStatus.BOOKED.value, "completed") is False
        assert repo.transition(slot_id, 1, SlotStatus.AVAILABLE.value, "cancelled") is True


class TestBalanceGuard:
    @staticmethod
    def _debit_one_hour(repo, account, expected_version):
        return repo.write_balance(
            account,
            expected_version=expected_version,
            balance_hours=Decimal("1.00"),
            total_purchased=Decimal("2.00"),
            total_used=Decimal("1.00"),
            debit=Decimal("1.00"),
        )

    @staticmethod
    def _open_account(session, balance):
        return RepositoryFactory.create_credit_account_repository(session).create(
            student_id=STUDENT_ID,
            teacher_id=TEACHER_ID,
            balance_hours=Decimal(balance),
            total_purchased=Decimal("2.00"),
            total_used=Decimal("0.00"),
            version=1,
        )

    def test_stale_balance_write_is_refused(self, file_sessions):
        first, second = file_sessions
        account = self._open_account(first, "2.00")
        first.commit()
        second_repo = RepositoryFactory.create_credit_account_repository(second)
        stale = second_repo.get_by_id(account.id)

        first_repo = RepositoryFactory.create_credit_account_repository(first)
        assert self._debit_one_hour(first_repo, account, 1) is True
        first.commit()
        assert self._debit_one_hour(second_repo, stale, 1) is False

    def test_debit_larger_than_stored_balance_is_refused(self, file_sessions):
        session = file_sessions[0]
        account = self._open_account(session, "0.50")
        repo = RepositoryFactory.create_credit_account_repository(session)
        assert self._debit_one_hour(repo, account, 1) is False
