# backend/lessonbook/routes/v1/credits.py
"""
Credit ledger routes - API v1

Endpoints:
    POST /purchase - Record purchased hours for a student (teacher)
    GET / - The teacher's credit accounts
    GET /me - The caller's own accounts
    GET /{account_id}/balance - Balance of one account
    GET /{account_id}/transactions - Ledger history, newest first
    POST /{account_id}/adjust - Manual correction (teacher)
    GET /{account_id}/integrity - Recompute the balance from the log (teacher)
    POST /{account_id}/deactivate - Stop further bookings on an account (teacher)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ...api.dependencies import (
    acting_teacher_id,
    get_credit_ledger_service,
    get_current_principal,
    get_permission_service,
    require_teacher,
)
from ...schemas.credit import (
    BalanceResponse,
    CreditAdjust,
    CreditPurchase,
    CreditTransactionResponse,
    IntegrityResponse,
    TransactionResultResponse,
)
from ...services.credit_ledger_service import CreditLedgerService
from ...services.permission_service import Capability, PermissionService, Principal, Role

router = APIRouter(tags=["credits-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

ACCOUNT_READERS = (Capability.TEACHER_OWNS_CREDIT_ACCOUNT, Capability.STUDENT_OWNS_CREDIT_ACCOUNT)


@router.post(
    "/purchase", response_model=TransactionResultResponse, status_code=status.HTTP_201_CREATED
)
def purchase_credits(
    payload: CreditPurchase,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> TransactionResultResponse:
    """Opens the account on first purchase."""
    result = ledger.purchase(
        payload.student_id,
        acting_teacher_id(principal, teacher_id),
        payload.hours,
        rate_per_hour=payload.rate_per_hour,
        performed_by=principal.subject_id,
        payment_reference=payload.payment_reference,
        description=payload.description,
    )
    return TransactionResultResponse.model_validate(result)


@router.get("", response_model=List[BalanceResponse])
def list_accounts(
    include_inactive: bool = Query(False),
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> List[BalanceResponse]:
    accounts = ledger.accounts_for_teacher(
        acting_teacher_id(principal, teacher_id), include_inactive
    )
    return [BalanceResponse.model_validate(ledger.snapshot(account)) for account in accounts]


@router.get("/me", response_model=List[BalanceResponse])
def my_accounts(
    principal: Principal = Depends(get_current_principal),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> List[BalanceResponse]:
    accounts = ledger.accounts_for_student(principal.subject_id)
    if principal.role == Role.SHARE_TOKEN:
        accounts = [account for account in accounts if account.teacher_id == principal.teacher_id]
    return [BalanceResponse.model_validate(ledger.snapshot(account)) for account in accounts]


@router.get("/{account_id}/balance", response_model=BalanceResponse)
def get_balance(
    account_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    permissions: PermissionService = Depends(get_permission_service),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> BalanceResponse:
    permissions.require_any(principal, ACCOUNT_READERS, account_id)
    return BalanceResponse.model_validate(ledger.get_balance(account_id))


@router.get("/{account_id}/transactions", response_model=List[CreditTransactionResponse])
def list_transactions(
    account_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_current_principal),
    permissions: PermissionService = Depends(get_permission_service),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> List[CreditTransactionResponse]:
    permissions.require_any(principal, ACCOUNT_READERS, account_id)
    transactions = ledger.list_transactions(account_id, limit=limit, offset=offset)
    return [CreditTransactionResponse.model_validate(row) for row in transactions]


@router.post("/{account_id}/adjust", response_model=TransactionResultResponse)
def adjust_credits(
    payload: CreditAdjust,
    account_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> TransactionResultResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_CREDIT_ACCOUNT, account_id)
    result = ledger.adjust(
        account_id, payload.hours, payload.description, performed_by=principal.subject_id
    )
    return TransactionResultResponse.model_validate(result)


@router.get("/{account_id}/integrity", response_model=IntegrityResponse)
def verify_integrity(
    account_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> IntegrityResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_CREDIT_ACCOUNT, account_id)
    return IntegrityResponse(**ledger.verify_integrity(account_id))


@router.post("/{account_id}/deactivate", response_model=BalanceResponse)
def deactivate_account(
    account_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    ledger: CreditLedgerService = Depends(get_credit_ledger_service),
) -> BalanceResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_CREDIT_ACCOUNT, account_id)
    return BalanceResponse.model_validate(
        ledger.deactivate(account_id, performed_by=principal.subject_id)
    )
