# backend/lessonbook/routes/v1/bookings.py
"""
Booking routes - API v1

Endpoints:
    POST / - Book a slot with a share token or a student bearer token
    GET / - List the caller's bookings
    GET /{booking_id} - Booking details
    POST /{booking_id}/cancel - Cancel and refund
    POST /{booking_id}/complete - Mark a lesson taught (teacher)

All business rules live in BookingTransactionEngine. Handlers resolve the
caller, check capabilities and translate results into responses.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ...api.dependencies import (
    Credentials,
    get_booking_engine,
    get_client_info,
    get_credentials,
    get_current_principal,
    get_permission_service,
    get_share_token_service,
    require_teacher,
    resolve_caller,
)
from ...core.exceptions import (
    DomainException,
    ForbiddenException,
    NoCreditAccountException,
    ValidationException,
)
from ...schemas.booking import (
    BookingCancel,
    BookingCancelResponse,
    BookingCreate,
    BookingCreateResponse,
    BookingResponse,
)
from ...services.booking_engine import BookingTransactionEngine
from ...services.permission_service import Capability, PermissionService, Principal, Role
from ...services.share_token_service import ClientInfo, ShareTokenService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    credentials: Credentials = Depends(get_credentials),
    client_info: ClientInfo = Depends(get_client_info),
    tokens: ShareTokenService = Depends(get_share_token_service),
    permissions: PermissionService = Depends(get_permission_service),
    engine: BookingTransactionEngine = Depends(get_booking_engine),
) -> BookingCreateResponse:
    """
    Book a slot and debit one lesson from the student's credit account.

    The slot status change, the booking row and the ledger debit commit
    together or not at all.
    """
    caller, share_token = resolve_caller(payload.token, credentials, tokens, client_info)
    if not caller.acts_as_student:
        raise ForbiddenException("Only students can book lessons", code="STUDENT_REQUIRED")

    if caller.role == Role.SHARE_TOKEN:
        permissions.require(caller, Capability.TOKEN_GRANTS_ACCESS, payload.schedule_slot_id)

    try:
        result = engine.book(payload.schedule_slot_id, caller.subject_id, notes=payload.notes)
    except NoCreditAccountException:
        if share_token:
            tokens.record_event(
                share_token,
                "booking_without_credit_account",
                client_info,
                success=False,
                details={"schedule_slot_id": payload.schedule_slot_id},
            )
        raise
    except DomainException as exc:
        if share_token:
            tokens.record_event(
                share_token,
                "booking_failed",
                client_info,
                success=False,
                details={"schedule_slot_id": payload.schedule_slot_id, "code": exc.code},
            )
        raise

    if share_token:
        tokens.record_event(
            share_token,
            "booking_success",
            client_info,
            details={"booking_id": result.booking_id},
        )
    return BookingCreateResponse.model_validate(result)


@router.get("", response_model=List[BookingResponse])
def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    teacher_id: Optional[str] = Query(None, description="Required for admins"),
    principal: Principal = Depends(get_current_principal),
    engine: BookingTransactionEngine = Depends(get_booking_engine),
) -> List[BookingResponse]:
    if principal.is_teacher:
        bookings = engine.bookings_for_teacher(principal.subject_id, status_filter)
    elif principal.acts_as_student:
        bookings = engine.bookings_for_student(
            principal.subject_id, principal.teacher_id, status_filter
        )
    elif teacher_id:
        bookings = engine.bookings_for_teacher(teacher_id, status_filter)
    else:
        raise ValidationException("teacher_id is required", code="TEACHER_ID_REQUIRED")
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    permissions: PermissionService = Depends(get_permission_service),
    engine: BookingTransactionEngine = Depends(get_booking_engine),
) -> BookingResponse:
    permissions.require_any(
        principal,
        (Capability.TEACHER_OWNS_BOOKING, Capability.STUDENT_OWNS_BOOKING),
        booking_id,
    )
    return BookingResponse.model_validate(engine.get_booking(booking_id))


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
    payload: BookingCancel,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    credentials: Credentials = Depends(get_credentials),
    client_info: ClientInfo = Depends(get_client_info),
    tokens: ShareTokenService = Depends(get_share_token_service),
    permissions: PermissionService = Depends(get_permission_service),
    engine: BookingTransactionEngine = Depends(get_booking_engine),
) -> BookingCancelResponse:
    """Cancel a booking, refund the debit in full and relist the slot."""
    caller, share_token = resolve_caller(payload.token, credentials, tokens, client_info)
    permissions.require_any(
        caller,
        (Capability.TEACHER_OWNS_BOOKING, Capability.STUDENT_OWNS_BOOKING),
        booking_id,
    )
    result = engine.cancel(
        booking_id,
        actor_role=caller.actor_role,
        actor_id=caller.subject_id,
        reason=payload.reason,
    )
    if share_token:
        tokens.record_event(
            share_token, "booking_cancelled", client_info, details={"booking_id": booking_id}
        )
    return BookingCancelResponse.model_validate(result)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    engine: BookingTransactionEngine = Depends(get_booking_engine),
) -> BookingResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_BOOKING, booking_id)
    booking = engine.complete(booking_id, performed_by=principal.subject_id)
    return BookingResponse.model_validate(booking)
