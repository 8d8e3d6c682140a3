# backend/tests/conftest.py
"""
Shared fixtures.

Every test gets its own in-memory SQLite schema. Services are built on a
FrozenClock so notice windows, expiries and the no-show sweep are
deterministic; the API client runs on the real clock, so API tests book
slots a week or more ahead of today.
"""

from types import SimpleNamespace
from typing import Dict
from unittest.mock import Mock

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lessonbook.api.dependencies.database import get_db
from lessonbook.database import Base, _sqlite_on_connect, init_db
from lessonbook.events import EventPublisher
from lessonbook.main import create_app
from lessonbook.services.booking_engine import BookingTransactionEngine
from lessonbook.services.credit_ledger_service import CreditLedgerService
from lessonbook.services.permission_service import PermissionService
from lessonbook.services.share_token_service import ShareTokenService
from lessonbook.services.slot_registry_service import SlotRegistryService
from tests.helpers import (
    LESSON_END,
    LESSON_START,
    STUDENT_ID,
    TEACHER_ID,
    TUESDAY,
    FrozenClock,
    auth_headers,
)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    event.listen(engine, "connect", _sqlite_on_connect)
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(
        bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False
    )


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sender() -> Mock:
    """Stands in for the notification sender so published events can be inspected."""
    return Mock()


@pytest.fixture
def services(db, clock, sender):
    publisher = EventPublisher(sender=sender)
    ledger = CreditLedgerService(db, clock)
    registry = SlotRegistryService(db, clock)
    engine = BookingTransactionEngine(
        db, clock, ledger=ledger, registry=registry, publisher=publisher
    )
    return SimpleNamespace(
        ledger=ledger,
        registry=registry,
        engine=engine,
        waitlist=engine.waitlist,
        tokens=ShareTokenService(db, clock),
        permissions=PermissionService(db),
        publisher=publisher,
    )


@pytest.fixture
def funded_account(services) -> str:
    """STUDENT_ID holds 10 hours with TEACHER_ID; returns the account id."""
    result = services.ledger.purchase(STUDENT_ID, TEACHER_ID, 10, performed_by=TEACHER_ID)
    return result.account_id


@pytest.fixture
def tuesday_slot(services):
    """Single-seat slot, Tuesday 14:00-15:00, 29 hours after the frozen now."""
    return services.registry.create_slot(TEACHER_ID, TUESDAY, LESSON_START, LESSON_END)


# API


@pytest.fixture
def client(db):
    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def teacher_headers() -> Dict[str, str]:
    return auth_headers(TEACHER_ID, "teacher")


@pytest.fixture
def student_headers() -> Dict[str, str]:
    return auth_headers(STUDENT_ID, "student")


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return auth_headers("admin-1", "admin")
