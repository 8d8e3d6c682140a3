# backend/lessonbook/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .credit_repository import CreditAccountRepository, CreditTransactionRepository
    from .schedule_repository import (
        BlockedTimeRepository,
        ScheduleSlotRepository,
        TimeSlotTemplateRepository,
    )
    from .share_token_repository import ShareTokenRepository, TokenAuditLogRepository
    from .waitlist_repository import WaitlistRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_credit_account_repository(db: Session) -> "CreditAccountRepository":
        from .credit_repository import CreditAccountRepository

        return CreditAccountRepository(db)

    @staticmethod
    def create_credit_transaction_repository(db: Session) -> "CreditTransactionRepository":
        from .credit_repository import CreditTransactionRepository

        return CreditTransactionRepository(db)

    @staticmethod
    def create_schedule_slot_repository(db: Session) -> "ScheduleSlotRepository":
        from .schedule_repository import ScheduleSlotRepository

        return ScheduleSlotRepository(db)

    @staticmethod
    def create_template_repository(db: Session) -> "TimeSlotTemplateRepository":
        from .schedule_repository import TimeSlotTemplateRepository

        return TimeSlotTemplateRepository(db)

    @staticmethod
    def create_blocked_time_repository(db: Session) -> "BlockedTimeRepository":
        from .schedule_repository import BlockedTimeRepository

        return BlockedTimeRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_waitlist_repository(db: Session) -> "WaitlistRepository":
        from .waitlist_repository import WaitlistRepository

        return WaitlistRepository(db)

    @staticmethod
    def create_share_token_repository(db: Session) -> "ShareTokenRepository":
        from .share_token_repository import ShareTokenRepository

        return ShareTokenRepository(db)

    @staticmethod
    def create_token_audit_log_repository(db: Session) -> "TokenAuditLogRepository":
        from .share_token_repository import TokenAuditLogRepository

        return TokenAuditLogRepository(db)
