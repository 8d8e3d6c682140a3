# backend/lessonbook/services/credit_ledger_service.py
"""
Credit Ledger Service

Owns credit account balances and the append-only transaction log.

Every balance change goes through ``record()``: it computes the new
balance from the transaction type, writes it with a version-checked
update and appends the CreditTransaction row in the same unit of work.
Summing an account's log therefore always reproduces its stored balance.

``apply_transaction()`` is the standalone entry point and commits its own
unit. Orchestrators that need the debit to share a unit with other writes
(the booking engine) call ``record()`` inside their own transaction.
Failures are raised to the caller and never retried here.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Dict, List, Optional, Type, Union

from sqlalchemy.orm import Session

from ..core.exceptions import (
    AccountInactiveException,
    BookingConflictException,
    InsufficientBalanceException,
    InvalidAmountException,
    NotFoundException,
    ValidationException,
)
from ..models.credit import CreditAccount, CreditTransaction, ReferenceType, TransactionType
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService, Clock

logger = logging.getLogger(__name__)

HOURS_QUANTUM = Decimal("0.01")
Hours = Union[Decimal, int, float, str]


def to_hours(value: Hours) -> Decimal:
    """Normalize an hours amount to two decimal places."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationException(
            f"Invalid hours value: {value!r}", code="INVALID_AMOUNT"
        ) from exc
    if not amount.is_finite():
        raise ValidationException(f"Invalid hours value: {value!r}", code="INVALID_AMOUNT")
    return amount.quantize(HOURS_QUANTUM)


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: str
    account_id: str
    transaction_type: str
    hours_amount: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class BalanceSnapshot:
    account_id: str
    student_id: str
    teacher_id: str
    balance_hours: Decimal
    total_purchased: Decimal
    total_used: Decimal
    rate_per_hour: Optional[Decimal]
    is_active: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "student_id": self.student_id,
            "teacher_id": self.teacher_id,
            "balance_hours": self.balance_hours,
            "total_purchased": self.total_purchased,
            "total_used": self.total_used,
            "rate_per_hour": self.rate_per_hour,
            "is_active": self.is_active,
        }


class CreditLedgerService(BaseService):
    """Service for the prepaid hour-credit ledger."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.account_repository = RepositoryFactory.create_credit_account_repository(db)
        self.transaction_repository = RepositoryFactory.create_credit_transaction_repository(db)

    # Reads

    def get_account(self, account_id: str) -> CreditAccount:
        account = self.account_repository.get_by_id(account_id, fresh=True)
        if account is None:
            raise NotFoundException(
                "Credit account not found",
                code="CREDIT_ACCOUNT_NOT_FOUND",
                details={"account_id": account_id},
            )
        return account

    def find_account(self, student_id: str, teacher_id: str) -> Optional[CreditAccount]:
        return self.account_repository.get_for_pair(student_id, teacher_id)

    def get_balance(self, account_id: str) -> BalanceSnapshot:
        """Read-only view of an account's balance."""
        return self.snapshot(self.get_account(account_id))

    def list_transactions(
        self, account_id: str, limit: int = 100, offset: int = 0
    ) -> List[CreditTransaction]:
        self.get_account(account_id)
        return self.transaction_repository.list_for_account(account_id, limit=limit, offset=offset)

    def accounts_for_teacher(
        self, teacher_id: str, include_inactive: bool = False
    ) -> List[CreditAccount]:
        return self.account_repository.list_for_teacher(teacher_id, include_inactive)

    def accounts_for_student(self, student_id: str) -> List[CreditAccount]:
        return self.account_repository.list_for_student(student_id)

    def verify_integrity(self, account_id: str) -> Dict[str, Any]:
        """Recompute the balance from the log and compare with the stored value."""
        account = self.get_account(account_id)
        stored = to_hours(account.balance_hours or 0)
        computed = self.transaction_repository.sum_for_account(account_id)
        consistent = stored == computed and stored >= 0
        if not consistent:
            self.logger.error(
                "Credit ledger mismatch",
                extra={"account_id": account_id, "stored": str(stored), "computed": str(computed)},
            )
        return {
            "account_id": account_id,
            "stored_balance": stored,
            "ledger_balance": computed,
            "consistent": consistent,
        }

    # Writes

    @BaseService.measure_operation("apply_credit_transaction")
    def apply_transaction(
        self,
        account_id: str,
        transaction_type: Union[TransactionType, str],
        hours: Hours,
        description: Optional[str] = None,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> TransactionResult:
        """Apply one ledger transaction as its own atomic unit."""
        with self.transaction():
            account = self.get_account(account_id)
            return self.record(
                account,
                transaction_type,
                hours,
                description,
                reference_type=reference_type,
                reference_id=reference_id,
                performed_by=performed_by,
            )

    @BaseService.measure_operation("purchase_credits")
    def purchase(
        self,
        student_id: str,
        teacher_id: str,
        hours: Hours,
        *,
        rate_per_hour: Optional[Hours] = None,
        performed_by: Optional[str] = None,
        payment_reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TransactionResult:
        """
        Record a manually reconciled payment.

        Creates the account on first purchase and reactivates a deactivated one.
        """
        with self.transaction():
            account = self.account_repository.get_for_pair(student_id, teacher_id)
            if account is None:
                account = self.account_repository.create(
                    student_id=student_id,
                    teacher_id=teacher_id,
                    balance_hours=Decimal("0"),
                    total_purchased=Decimal("0"),
                    total_used=Decimal("0"),
                    rate_per_hour=to_hours(rate_per_hour) if rate_per_hour is not None else None,
                    is_active=True,
                    version=1,
                )
                self.log_operation(
                    "credit_account_created", account_id=account.id, student_id=student_id
                )
            elif rate_per_hour is not None:
                account.rate_per_hour = to_hours(rate_per_hour)
                self.db.flush()

            return self.record(
                account,
                TransactionType.PURCHASE,
                hours,
                description or f"Purchased {to_hours(hours)} hours",
                reference_type=ReferenceType.PAYMENT.value,
                reference_id=payment_reference,
                performed_by=performed_by,
            )

    @BaseService.measure_operation("adjust_credits")
    def adjust(
        self,
        account_id: str,
        hours: Hours,
        description: str,
        *,
        performed_by: Optional[str] = None,
    ) -> TransactionResult:
        """Signed manual correction by the teacher."""
        return self.apply_transaction(
            account_id,
            TransactionType.ADJUSTMENT,
            hours,
            description,
            reference_type=ReferenceType.MANUAL_ADJUSTMENT.value,
            performed_by=performed_by,
        )

    @BaseService.measure_operation("deactivate_credit_account")
    def deactivate(self, account_id: str, performed_by: Optional[str] = None) -> BalanceSnapshot:
        """Soft-deactivate; the account and its history are kept."""
        with self.transaction():
            account = self.get_account(account_id)
            version = account.version
            if not self.account_repository.compare_and_swap(
                account.id,
                {"version": version},
                {"is_active": False, "version": version + 1},
            ):
                raise BookingConflictException(
                    "Credit account changed concurrently",
                    details={"account_id": account_id},
                )
            self.log_operation(
                "credit_account_deactivated", account_id=account_id, performed_by=performed_by
            )
            return self.snapshot(self.get_account(account_id))

    def record(
        self,
        account: CreditAccount,
        transaction_type: Union[TransactionType, str],
        hours: Hours,
        description: Optional[str] = None,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        performed_by: Optional[str] = None,
        insufficient_error: Type[InsufficientBalanceException] = InsufficientBalanceException,
    ) -> TransactionResult:
        """
        Write one balance change and its ledger row. Does not commit.

        Purchases and refunds add, deductions subtract, adjustments are
        signed. Raises InvalidAmount for non-positive purchase, deduction or
        refund amounts and ``insufficient_error`` if the balance would go
        negative. A concurrent write to the same account is reported as a
        BookingConflict.
        """
        try:
            tx_type = TransactionType(transaction_type)
        except ValueError as exc:
            raise ValidationException(
                f"Unknown transaction type: {transaction_type}",
                code="INVALID_TRANSACTION_TYPE",
            ) from exc

        amount = to_hours(hours)
        if tx_type != TransactionType.ADJUSTMENT and amount <= 0:
            raise InvalidAmountException(tx_type.value, amount)

        # Re-read inside the unit; the caller's copy may be stale
        self.account_repository.refresh(account)
        balance = to_hours(account.balance_hours or 0)
        purchased = to_hours(account.total_purchased or 0)
        used = to_hours(account.total_used or 0)
        expected_version = account.version
        reactivate: Optional[bool] = None

        if tx_type == TransactionType.PURCHASE:
            delta = amount
            purchased += amount
            if not account.is_active:
                reactivate = True
        elif tx_type == TransactionType.DEDUCTION:
            if not account.is_active:
                raise AccountInactiveException(account.id)
            delta = -amount
            used += amount
        else:
            # refunds and adjustments move the balance without touching totals
            delta = amount

        new_balance = balance + delta
        if new_balance < 0:
            raise insufficient_error(required=abs(delta), available=balance)

        if not self.account_repository.write_balance(
            account,
            expected_version=expected_version,
            balance_hours=new_balance,
            total_purchased=purchased,
            total_used=used,
            is_active=reactivate,
            debit=amount if tx_type == TransactionType.DEDUCTION else None,
        ):
            raise BookingConflictException(
                "Credit balance changed concurrently; nothing was charged",
                details={"account_id": account.id},
            )

        entry = self.transaction_repository.create(
            account_id=account.id,
            transaction_type=tx_type.value,
            hours_amount=delta,
            balance_after=new_balance,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            performed_by=performed_by,
            created_at=self.now(),
        )
        prometheus_metrics.record_ledger_transaction(tx_type.value)
        self.logger.info(
            "Ledger transaction recorded",
            extra={
                "account_id": account.id,
                "transaction_type": tx_type.value,
                "hours_amount": str(delta),
                "balance_after": str(new_balance),
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )
        return TransactionResult(
            transaction_id=entry.id,
            account_id=account.id,
            transaction_type=tx_type.value,
            hours_amount=delta,
            balance_after=new_balance,
        )

    def snapshot(self, account: CreditAccount) -> BalanceSnapshot:
        return BalanceSnapshot(
            account_id=account.id,
            student_id=account.student_id,
            teacher_id=account.teacher_id,
            balance_hours=to_hours(account.balance_hours or 0),
            total_purchased=to_hours(account.total_purchased or 0),
            total_used=to_hours(account.total_used or 0),
            rate_per_hour=(
                to_hours(account.rate_per_hour) if account.rate_per_hour is not None else None
            ),
            is_active=bool(account.is_active),
        )
