# backend/lessonbook/models/credit.py
"""
Prepaid hour-credit ledger models.

A CreditAccount holds the balance for one (student, teacher) pair. Every
balance change is paired with an immutable CreditTransaction row written
in the same database transaction, so summing an account's transaction
log always reproduces ``balance_hours``.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    DEDUCTION = "deduction"
    ADJUSTMENT = "adjustment"
    REFUND = "refund"


class ReferenceType(str, Enum):
    """What caused a ledger row."""

    BOOKING = "booking"
    PAYMENT = "payment"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    SYSTEM = "system"
    NO_SHOW_SWEEP = "no_show_sweep"


class CreditAccount(Base):
    """Hour balance a student holds with one teacher."""

    __tablename__ = "credit_accounts"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    student_id = Column(String(64), nullable=False, index=True)
    teacher_id = Column(String(64), nullable=False, index=True)

    balance_hours = Column(Numeric(10, 2), nullable=False, default=0)
    total_purchased = Column(Numeric(10, 2), nullable=False, default=0)
    total_used = Column(Numeric(10, 2), nullable=False, default=0)
    rate_per_hour = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Bumped on every balance write; compare-and-swap guard
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    transactions = relationship(
        "CreditTransaction",
        back_populates="account",
        order_by="CreditTransaction.created_at",
    )

    __table_args__ = (
        UniqueConstraint("student_id", "teacher_id", name="uq_credit_account_pair"),
        CheckConstraint("balance_hours >= 0", name="ck_credit_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<CreditAccount {self.id} student={self.student_id} "
            f"teacher={self.teacher_id} balance={self.balance_hours}>"
        )


class CreditTransaction(Base):
    """Append-only ledger row. Never updated or deleted."""

    __tablename__ = "credit_transactions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    account_id = Column(String(26), ForeignKey("credit_accounts.id"), nullable=False, index=True)
    transaction_type = Column(String(20), nullable=False)
    # Signed: purchases and refunds positive, deductions negative
    hours_amount = Column(Numeric(10, 2), nullable=False)
    balance_after = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    reference_type = Column(String(30), nullable=True)
    reference_id = Column(String(64), nullable=True)
    performed_by = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_now_utc, server_default=func.now(), nullable=False
    )

    account = relationship("CreditAccount", back_populates="transactions")

    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ('purchase', 'deduction', 'adjustment', 'refund')",
            name="ck_credit_transaction_type",
        ),
        CheckConstraint("balance_after >= 0", name="ck_credit_transaction_balance_after"),
        Index("ix_credit_transactions_reference", "reference_type", "reference_id"),
    )
