# backend/lessonbook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets services bound to its own session. The booking engine,
ledger, registry and waitlist of one request share that session so a
booking and its ledger row commit together.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ...events.publisher import EventPublisher
from ...services.booking_engine import BookingTransactionEngine
from ...services.conflict_detector import AvailabilityConflictDetector
from ...services.credit_ledger_service import CreditLedgerService
from ...services.permission_service import PermissionService
from ...services.share_token_service import ShareTokenService
from ...services.slot_registry_service import SlotRegistryService
from ...services.waitlist_service import WaitlistService
from .database import get_db


@lru_cache(maxsize=1)
def get_event_publisher() -> EventPublisher:
    """Process-wide publisher; the sender is chosen from settings once."""
    return EventPublisher()


def get_credit_ledger_service(db: Session = Depends(get_db)) -> CreditLedgerService:
    return CreditLedgerService(db)


def get_conflict_detector(db: Session = Depends(get_db)) -> AvailabilityConflictDetector:
    return AvailabilityConflictDetector(db)


def get_slot_registry_service(
    db: Session = Depends(get_db),
    detector: AvailabilityConflictDetector = Depends(get_conflict_detector),
) -> SlotRegistryService:
    return SlotRegistryService(db, conflict_detector=detector)


def get_booking_engine(
    db: Session = Depends(get_db),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> BookingTransactionEngine:
    """Get the booking engine wired to the request's ledger and registry."""
    return BookingTransactionEngine(db, ledger=ledger, registry=registry, publisher=publisher)


def get_waitlist_service(
    engine: BookingTransactionEngine = Depends(get_booking_engine),
) -> WaitlistService:
    return engine.waitlist


def get_share_token_service(db: Session = Depends(get_db)) -> ShareTokenService:
    return ShareTokenService(db)


def get_permission_service(db: Session = Depends(get_db)) -> PermissionService:
    return PermissionService(db)
