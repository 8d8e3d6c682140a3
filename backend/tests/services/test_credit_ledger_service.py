"""CreditLedgerService: balances, the append-only log and integrity checks."""

from decimal import Decimal

import pytest

from lessonbook.core.exceptions import (
    AccountInactiveException,
    InsufficientBalanceException,
    InvalidAmountException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from lessonbook.models.credit import CreditTransaction, TransactionType
from lessonbook.services.credit_ledger_service import to_hours
from tests.helpers import OTHER_STUDENT_ID, STUDENT_ID, TEACHER_ID


class TestToHours:
    def test_quantizes_to_two_places(self):
        assert to_hours("1.005") == Decimal("1.00")
        assert to_hours(2) == Decimal("2.00")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity"])
    def test_rejects_non_finite_values(self, value):
        with pytest.raises(ValidationException) as exc_info:
            to_hours(value)
        assert exc_info.value.code == "INVALID_AMOUNT"


class TestPurchase:
    def test_first_purchase_opens_account(self, services):
        result = services.ledger.purchase(STUDENT_ID, TEACHER_ID, 10, rate_per_hour="45")

        snapshot = services.ledger.get_balance(result.account_id)
        assert result.transaction_type == "purchase"
        assert result.balance_after == Decimal("10.00")
        assert snapshot.total_purchased == Decimal("10.00")
        assert snapshot.rate_per_hour == Decimal("45.00")
        assert snapshot.is_active is True

    def test_second_purchase_reuses_account(self, services, funded_account):
        result = services.ledger.purchase(STUDENT_ID, TEACHER_ID, "2.5")

        assert result.account_id == funded_account
        assert result.balance_after == Decimal("12.50")
        assert len(services.ledger.accounts_for_teacher(TEACHER_ID)) == 1

    @pytest.mark.parametrize("hours", [0, -1])
    def test_non_positive_purchase_is_rejected(self, services, db, hours):
        with pytest.raises(InvalidAmountException):
            services.ledger.purchase(OTHER_STUDENT_ID, TEACHER_ID, hours)
        # nothing survives the rolled back unit, not even the new account
        assert services.ledger.find_account(OTHER_STUDENT_ID, TEACHER_ID) is None

    def test_purchase_reactivates_account(self, services, funded_account):
        services.ledger.deactivate(funded_account)
        services.ledger.purchase(STUDENT_ID, TEACHER_ID, 1)
        assert services.ledger.get_balance(funded_account).is_active is True


class TestTransactions:
    def test_deduction_reduces_balance_and_counts_usage(self, services, funded_account):
        result = services.ledger.apply_transaction(funded_account, "deduction", 3)

        snapshot = services.ledger.get_balance(funded_account)
        assert result.hours_amount == Decimal("-3.00")
        assert snapshot.balance_hours == Decimal("7.00")
        assert snapshot.total_used == Decimal("3.00")

    def test_overdraw_is_refused_and_nothing_changes(self, services, funded_account, db):
        with pytest.raises(InsufficientBalanceException) as exc_info:
            services.ledger.apply_transaction(funded_account, TransactionType.DEDUCTION, 11)

        assert exc_info.value.code == "INSUFFICIENT_BALANCE"
        assert services.ledger.get_balance(funded_account).balance_hours == Decimal("10.00")
        assert db.query(CreditTransaction).count() == 1

    def test_signed_adjustments(self, services, funded_account):
        services.ledger.adjust(funded_account, -2, "Correction")
        services.ledger.adjust(funded_account, "0.5", "Goodwill")

        snapshot = services.ledger.get_balance(funded_account)
        assert snapshot.balance_hours == Decimal("8.50")
        assert snapshot.total_purchased == Decimal("10.00")

    def test_adjustment_cannot_go_negative(self, services, funded_account):
        with pytest.raises(InsufficientBalanceException):
            services.ledger.adjust(funded_account, -10.01, "Too much")

    def test_refund_adds_back(self, services, funded_account):
        services.ledger.apply_transaction(funded_account, "deduction", 1)
        result = services.ledger.apply_transaction(funded_account, "refund", 1)
        assert result.balance_after == Decimal("10.00")

    def test_unknown_transaction_type(self, services, funded_account):
        with pytest.raises(ValidationException) as exc_info:
            services.ledger.apply_transaction(funded_account, "gift", 1)
        assert exc_info.value.code == "INVALID_TRANSACTION_TYPE"

    def test_inactive_account_cannot_be_debited(self, services, funded_account):
        snapshot = services.ledger.deactivate(funded_account, performed_by=TEACHER_ID)
        assert snapshot.is_active is False

        with pytest.raises(AccountInactiveException):
            services.ledger.apply_transaction(funded_account, "deduction", 1)

    def test_history_is_newest_first(self, services, funded_account, clock):
        clock.advance(minutes=1)
        services.ledger.apply_transaction(funded_account, "deduction", 1)
        clock.advance(minutes=1)
        services.ledger.adjust(funded_account, 1, "Bonus")

        history = services.ledger.list_transactions(funded_account)
        assert [row.transaction_type for row in history] == ["adjustment", "deduction", "purchase"]
        assert [row.balance_after for row in history] == [
            Decimal("10.00"),
            Decimal("9.00"),
            Decimal("10.00"),
        ]

    def test_missing_account(self, services):
        with pytest.raises(NotFoundException):
            services.ledger.get_balance("01HZZZZZZZZZZZZZZZZZZZZZZZ")


class TestIntegrity:
    def test_stored_balance_matches_log(self, services, funded_account):
        services.ledger.apply_transaction(funded_account, "deduction", 3)
        services.ledger.adjust(funded_account, "-0.25", "Rounding")
        services.ledger.apply_transaction(funded_account, "refund", 1)

        report = services.ledger.verify_integrity(funded_account)
        assert report["consistent"] is True
        assert report["stored_balance"] == report["ledger_balance"] == Decimal("7.75")

    def test_detects_out_of_band_edits(self, services, funded_account, db):
        account = services.ledger.get_account(funded_account)
        account.balance_hours = Decimal("99")
        db.commit()

        report = services.ledger.verify_integrity(funded_account)
        assert report["consistent"] is False
        assert report["ledger_balance"] == Decimal("10.00")

    def test_transactions_are_immutable(self, services, funded_account):
        row = services.ledger.list_transactions(funded_account)[0]
        with pytest.raises(RepositoryException):
            services.ledger.transaction_repository.update(row.id, hours_amount=5)
        with pytest.raises(RepositoryException):
            services.ledger.transaction_repository.delete(row.id)
