"""Credit ledger schemas."""
from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import Hours, StandardizedModel, StrictModel


class CreditPurchase(StrictModel):
    student_id: str = Field(..., min_length=1, max_length=64)
    hours: Hours
    rate_per_hour: Optional[Hours] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class CreditAdjust(StrictModel):
    hours: Hours = Field(..., description="Signed: positive adds hours, negative removes them")
    description: str = Field(..., min_length=1, max_length=500)


class TransactionResultResponse(StandardizedModel):
    transaction_id: str
    account_id: str
    transaction_type: str
    hours_amount: Hours
    balance_after: Hours


class BalanceResponse(StandardizedModel):
    account_id: str
    student_id: str
    teacher_id: str
    balance_hours: Hours
    total_purchased: Hours
    total_used: Hours
    rate_per_hour: Optional[Hours] = None
    is_active: bool


class CreditTransactionResponse(StandardizedModel):
    id: str
    account_id: str
    transaction_type: str
    hours_amount: Hours
    balance_after: Hours
    description: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: datetime


class IntegrityResponse(StandardizedModel):
    account_id: str
    stored_balance: Hours
    ledger_balance: Hours
    consistent: bool
