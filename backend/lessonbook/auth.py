"""
Identity tokens issued by the upstream identity provider.

The booking engine does not authenticate users itself. It only verifies
the signed JWT the identity provider hands out and reads two claims from
it: ``sub`` (the user id) and ``role`` (teacher, student or admin).
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi.security import HTTPBearer
import jwt
from jwt import PyJWTError

from .core.config import settings
from .core.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

IDENTITY_ROLES = {"teacher", "student", "admin"}


def decode_identity_token(token: str) -> Dict[str, Any]:
    """Verify a bearer token and return its claims."""
    try:
        payload_raw = jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
            options={"verify_aud": False},
        )
    except PyJWTError as exc:
        logger.info("Rejected identity token: %s", exc)
        raise UnauthorizedException(
            "Could not validate credentials", code="NOT_AUTHENTICATED"
        ) from exc

    payload = cast(Dict[str, Any], payload_raw)
    if not payload.get("sub") or payload.get("role") not in IDENTITY_ROLES:
        raise UnauthorizedException("Token is missing identity claims", code="NOT_AUTHENTICATED")
    return payload


def create_identity_token(
    subject: str, role: str, expires_delta: Optional[timedelta] = None
) -> str:
    """Sign an identity token. Used by tooling and tests standing in for the provider."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    return cast(
        str,
        jwt.encode(
            {"sub": subject, "role": role, "exp": expire},
            settings.identity_jwt_secret,
            algorithm=settings.identity_jwt_algorithm,
        ),
    )
