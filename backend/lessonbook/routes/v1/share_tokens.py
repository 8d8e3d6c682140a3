# backend/lessonbook/routes/v1/share_tokens.py
"""
Share link routes - API v1

Endpoints:
    POST / - Issue (or return the live) share link for a student (teacher)
    POST /regenerate - Rotate a student's share link (teacher)
    GET /{token} - Validate a share link (public)
    DELETE /{token} - Revoke a share link (teacher)
    GET /{token}/audit - Access history of a share link (teacher)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ...api.dependencies import (
    get_client_info,
    get_share_token_service,
    require_teacher,
)
from ...schemas.share_token import (
    ShareTokenCreate,
    ShareTokenResponse,
    ShareTokenValidationResponse,
    TokenAuditEntryResponse,
)
from ...services.permission_service import Principal
from ...services.share_token_service import ClientInfo, IssuedToken, ShareTokenService

router = APIRouter(tags=["share-tokens-v1"])


def _issued(issued: IssuedToken, response: Response) -> ShareTokenResponse:
    response.status_code = status.HTTP_201_CREATED if issued.created else status.HTTP_200_OK
    return ShareTokenResponse.model_validate(issued)


def _owner_filter(principal: Principal) -> Optional[str]:
    """Admins may manage any link; teachers only their own."""
    return None if principal.is_admin else principal.subject_id


@router.post("", response_model=ShareTokenResponse)
def create_share_token(
    payload: ShareTokenCreate,
    response: Response,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    tokens: ShareTokenService = Depends(get_share_token_service),
) -> ShareTokenResponse:
    """Idempotent: a live link for the pair is returned with 200, a new one with 201."""
    owner = teacher_id if principal.is_admin and teacher_id else principal.subject_id
    return _issued(tokens.create(payload.student_id, owner), response)


@router.post("/regenerate", response_model=ShareTokenResponse)
def regenerate_share_token(
    payload: ShareTokenCreate,
    response: Response,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    tokens: ShareTokenService = Depends(get_share_token_service),
) -> ShareTokenResponse:
    owner = teacher_id if principal.is_admin and teacher_id else principal.subject_id
    return _issued(tokens.regenerate(payload.student_id, owner), response)


@router.get("/{token}", response_model=ShareTokenValidationResponse)
def validate_share_token(
    token: str,
    client_info: ClientInfo = Depends(get_client_info),
    tokens: ShareTokenService = Depends(get_share_token_service),
) -> ShareTokenValidationResponse:
    return ShareTokenValidationResponse.model_validate(tokens.validate(token, client_info))


@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_share_token(
    token: str,
    principal: Principal = Depends(require_teacher),
    client_info: ClientInfo = Depends(get_client_info),
    tokens: ShareTokenService = Depends(get_share_token_service),
) -> Response:
    tokens.revoke(token, client_info, teacher_id=_owner_filter(principal))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{token}/audit", response_model=List[TokenAuditEntryResponse])
def share_token_audit(
    token: str,
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(require_teacher),
    tokens: ShareTokenService = Depends(get_share_token_service),
) -> List[TokenAuditEntryResponse]:
    entries = tokens.audit_history(token, limit=limit, teacher_id=_owner_filter(principal))
    return [TokenAuditEntryResponse.model_validate(entry) for entry in entries]
