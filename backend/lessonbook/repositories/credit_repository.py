# backend/lessonbook/repositories/credit_repository.py
"""
Credit Repository

Data access for credit accounts and the append-only transaction log.
Balance writes go through ``write_balance``, a version-checked update, so
two concurrent debits against the same account cannot both land.
"""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import List, Optional, cast

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.credit import CreditAccount, CreditTransaction
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CreditAccountRepository(BaseRepository[CreditAccount]):
    """Repository for credit account rows."""

    def __init__(self, db: Session):
        super().__init__(db, CreditAccount)
        self.logger = logging.getLogger(__name__)

    def get_for_pair(self, student_id: str, teacher_id: str) -> Optional[CreditAccount]:
        return self.find_one_by(student_id=student_id, teacher_id=teacher_id)

    def list_for_teacher(
        self, teacher_id: str, include_inactive: bool = False
    ) -> List[CreditAccount]:
        query = self.db.query(CreditAccount).filter(CreditAccount.teacher_id == teacher_id)
        if not include_inactive:
            query = query.filter(CreditAccount.is_active.is_(True))
        return cast(
            List[CreditAccount],
            self._execute_query(query.order_by(CreditAccount.created_at.asc(), CreditAccount.id)),
        )

    def list_for_student(self, student_id: str) -> List[CreditAccount]:
        query = (
            self.db.query(CreditAccount)
            .filter(CreditAccount.student_id == student_id)
            .order_by(CreditAccount.created_at.asc(), CreditAccount.id)
        )
        return cast(List[CreditAccount], self._execute_query(query))

    def write_balance(
        self,
        account: CreditAccount,
        *,
        expected_version: int,
        balance_hours: Decimal,
        total_purchased: Decimal,
        total_used: Decimal,
        is_active: Optional[bool] = None,
        debit: Optional[Decimal] = None,
    ) -> bool:
        """
        Persist a new balance only if nobody else wrote since ``expected_version``.

        A ``debit`` also requires the stored balance to still cover it.
        """
        values = {
            "balance_hours": balance_hours,
            "total_purchased": total_purchased,
            "total_used": total_used,
            "version": expected_version + 1,
        }
        if is_active is not None:
            values["is_active"] = is_active
        conditions = [CreditAccount.balance_hours >= debit] if debit is not None else []
        return self.compare_and_swap(
            account.id, {"version": expected_version}, values, conditions=conditions
        )


class CreditTransactionRepository(BaseRepository[CreditTransaction]):
    """Append-only access to the ledger. There is no update or delete path."""

    def __init__(self, db: Session):
        super().__init__(db, CreditTransaction)
        self.logger = logging.getLogger(__name__)

    def update(self, id: str, **kwargs):  # type: ignore[override]
        raise RepositoryException("Credit transactions are immutable")

    def delete(self, id: str) -> bool:
        raise RepositoryException("Credit transactions are append-only")

    def list_for_account(
        self, account_id: str, limit: int = 100, offset: int = 0
    ) -> List[CreditTransaction]:
        query = (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.account_id == account_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return cast(List[CreditTransaction], self._execute_query(query))

    def sum_for_account(self, account_id: str) -> Decimal:
        try:
            total = (
                self.db.query(func.coalesce(func.sum(CreditTransaction.hours_amount), 0))
                .filter(CreditTransaction.account_id == account_id)
                .scalar()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to sum ledger for %s: %s", account_id, exc)
            raise RepositoryException("Failed to sum credit transactions") from exc
        return Decimal(str(total)).quantize(Decimal("0.01"))

    def find_for_reference(
        self, reference_type: str, reference_id: str, transaction_type: Optional[str] = None
    ) -> List[CreditTransaction]:
        query = self.db.query(CreditTransaction).filter(
            CreditTransaction.reference_type == reference_type,
            CreditTransaction.reference_id == reference_id,
        )
        if transaction_type:
            query = query.filter(CreditTransaction.transaction_type == transaction_type)
        return cast(
            List[CreditTransaction],
            self._execute_query(query.order_by(CreditTransaction.created_at.asc())),
        )
