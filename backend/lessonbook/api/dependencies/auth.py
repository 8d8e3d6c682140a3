# backend/lessonbook/api/dependencies/auth.py
"""
Caller identity dependencies.

Two credentials are accepted:

- ``Authorization: Bearer <jwt>`` from the identity provider, for teachers,
  students and admins.
- ``X-Share-Token: <token>`` (or a ``token`` field in the request body,
  handled by the routes) for students arriving through a share link.
"""

from dataclasses import dataclass
import logging
from typing import Optional, Tuple

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials

from ...auth import bearer_scheme, decode_identity_token
from ...core.exceptions import ForbiddenException, UnauthorizedException, ValidationException
from ...services.permission_service import Principal, Role
from ...services.share_token_service import ClientInfo, ShareTokenService
from .services import get_share_token_service

logger = logging.getLogger(__name__)

SHARE_TOKEN_HEADER = "x-share-token"


def get_client_info(request: Request) -> ClientInfo:
    """Caller address and agent, as recorded in the token audit log."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address: Optional[str] = forwarded.split(",")[0].strip()
    else:
        ip_address = request.headers.get("x-real-ip") or (
            request.client.host if request.client else None
        )
    return ClientInfo(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )


def principal_from_token(
    token: str, tokens: ShareTokenService, client_info: Optional[ClientInfo] = None
) -> Principal:
    """Validate a share token and return the student it stands for."""
    validation = tokens.validate(token, client_info)
    return Principal(
        role=Role.SHARE_TOKEN,
        subject_id=validation.student_id,
        teacher_id=validation.teacher_id,
    )


@dataclass(frozen=True)
class Credentials:
    """What a request presented, before any share token is validated."""

    bearer: Optional[Principal] = None
    share_token: Optional[str] = None


def get_credentials(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Credentials:
    if credentials is not None and credentials.credentials:
        claims = decode_identity_token(credentials.credentials)
        bearer = Principal(role=Role(claims["role"]), subject_id=str(claims["sub"]))
        return Credentials(bearer=bearer)
    return Credentials(share_token=request.headers.get(SHARE_TOKEN_HEADER) or None)


def get_optional_principal(
    request: Request,
    credentials: Credentials = Depends(get_credentials),
    tokens: ShareTokenService = Depends(get_share_token_service),
) -> Optional[Principal]:
    if credentials.bearer is not None:
        return credentials.bearer
    if credentials.share_token:
        return principal_from_token(credentials.share_token, tokens, get_client_info(request))
    return None


def resolve_caller(
    body_token: Optional[str],
    credentials: Credentials,
    tokens: ShareTokenService,
    client_info: ClientInfo,
) -> Tuple[Principal, Optional[str]]:
    """
    Caller of a route that also takes a ``token`` in its body.

    A body token wins over the headers, and a bearer token over the
    ``X-Share-Token`` header. At most one share token is validated, so a
    request is counted and audited once. Returns the principal and the
    share token it came from.
    """
    share_token = body_token or (None if credentials.bearer else credentials.share_token)
    if share_token:
        return principal_from_token(share_token, tokens, client_info), share_token
    if credentials.bearer is None:
        raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED")
    return credentials.bearer, None


def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED")
    return principal


def require_teacher(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Teachers (or admins acting for one)."""
    if not (principal.is_teacher or principal.is_admin):
        logger.info("Teacher-only endpoint refused role %s", principal.role.value)
        raise ForbiddenException("Teacher credentials required", code="TEACHER_REQUIRED")
    return principal


def acting_teacher_id(principal: Principal, teacher_id: Optional[str] = None) -> str:
    """The teacher a request acts for: the caller, or ``teacher_id`` for admins."""
    if principal.is_teacher:
        return principal.subject_id
    if principal.is_admin and teacher_id:
        return teacher_id
    if principal.is_admin:
        raise ValidationException("teacher_id is required", code="TEACHER_ID_REQUIRED")
    raise ForbiddenException("Teacher credentials required", code="TEACHER_REQUIRED")
