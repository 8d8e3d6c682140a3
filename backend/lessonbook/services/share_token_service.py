# backend/lessonbook/services/share_token_service.py
"""
Share Token Service

Issues and validates the opaque links teachers hand to students. A link
grants booking access for exactly one (student, teacher) pair.

Tokens are looked up by their sha256 hash and then compared in constant
time. Every validation attempt, successful or not, lands in the audit log
keyed by the hash; raw tokens are never written there. Audit writes are
best-effort and commit separately from the operation they describe.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import hashlib
import hmac
import logging
import secrets
import string
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ExpiredTokenException,
    ForbiddenException,
    InvalidTokenException,
    RepositoryException,
)
from ..core.timezone_utils import as_utc
from ..models.share_token import ShareToken, TokenAuditLog
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService, Clock

logger = logging.getLogger(__name__)

# Audit actions logged at WARNING
SECURITY_ACTIONS = {"booking_without_credit_account", "booking_failed"}


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_well_formed(token: Optional[str]) -> bool:
    if not token or len(token) != settings.share_token_bytes * 2:
        return False
    return all(char in string.hexdigits for char in token)


@dataclass(frozen=True)
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None


@dataclass(frozen=True)
class IssuedToken:
    token: str
    share_url: str
    student_id: str
    teacher_id: str
    expires_at: datetime
    created: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "share_url": self.share_url, "expires_at": self.expires_at}


@dataclass(frozen=True)
class TokenValidation:
    student_id: str
    teacher_id: str
    needs_rotation: bool
    expires_at: datetime
    access_count: int


class ShareTokenService(BaseService):
    """Service for share-link issuance, validation and audit."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.token_repository = RepositoryFactory.create_share_token_repository(db)
        self.audit_repository = RepositoryFactory.create_token_audit_log_repository(db)

    @staticmethod
    def share_url(token: str) -> str:
        return f"{settings.public_booking_base_url.rstrip('/')}/book/{token}"

    # Issue

    @BaseService.measure_operation("create_share_token")
    def create(self, student_id: str, teacher_id: str) -> IssuedToken:
        """Return the pair's live token, issuing one if there is none."""
        with self.transaction():
            current = self.token_repository.active_for_pair(student_id, teacher_id)
            if current is not None and as_utc(current.expires_at) > self.now():
                return self._issued(current, created=False)
            record = self._issue(student_id, teacher_id)
        return self._issued(record, created=True)

    @BaseService.measure_operation("regenerate_share_token")
    def regenerate(self, student_id: str, teacher_id: str) -> IssuedToken:
        """Forced rotation: the previous token stops working immediately."""
        with self.transaction():
            record = self._issue(student_id, teacher_id)
        return self._issued(record, created=True)

    def _issue(self, student_id: str, teacher_id: str) -> ShareToken:
        now = self.now()
        revoked = self.token_repository.deactivate_for_pair(student_id, teacher_id, now)
        token = secrets.token_hex(settings.share_token_bytes)
        record = self.token_repository.create(
            token=token,
            token_hash=hash_token(token),
            student_id=student_id,
            teacher_id=teacher_id,
            is_active=True,
            access_count=0,
            expires_at=now + timedelta(days=settings.share_token_ttl_days),
            created_at=now,
        )
        self.log_operation(
            "share_token_issued",
            student_id=student_id,
            teacher_id=teacher_id,
            rotated=revoked,
        )
        return record

    def _issued(self, record: ShareToken, created: bool) -> IssuedToken:
        return IssuedToken(
            token=record.token,
            share_url=self.share_url(record.token),
            student_id=record.student_id,
            teacher_id=record.teacher_id,
            expires_at=record.expires_at,
            created=created,
        )

    @BaseService.measure_operation("revoke_share_token")
    def revoke(
        self,
        token: str,
        client_info: Optional[ClientInfo] = None,
        teacher_id: Optional[str] = None,
    ) -> None:
        """Deactivate a token. ``teacher_id`` restricts revocation to the issuing teacher."""
        record = self._owned(token, teacher_id)
        with self.transaction():
            record.is_active = False
            record.revoked_at = self.now()
            self.db.flush()
        self._audit(
            record.token_hash, record.student_id, record.teacher_id, "revoked", True, client_info
        )

    # Validate

    @BaseService.measure_operation("validate_share_token")
    def validate(self, token: str, client_info: Optional[ClientInfo] = None) -> TokenValidation:
        """
        Resolve a token to its (student, teacher) pair.

        Every attempt on a known token counts as an access, even when the
        token is then refused. Raises InvalidToken for unknown, malformed,
        inactive or exhausted tokens and ExpiredToken once it has expired.
        """
        token_hash = hash_token(token or "")
        if not is_well_formed(token):
            self._refuse(token_hash, None, "malformed", client_info, InvalidTokenException())

        now = self.now()
        with self.transaction():
            record = self._lookup(token)
            if record is not None:
                self.token_repository.record_access(record.id, now)
                record = self.token_repository.get_by_id(record.id, fresh=True)

        if record is None:
            self._refuse(token_hash, None, "unknown", client_info, InvalidTokenException())
        if not record.is_active:
            self._refuse(token_hash, record, "inactive", client_info, InvalidTokenException())
        expires_at = as_utc(record.expires_at)
        if expires_at <= now:
            self._refuse(token_hash, record, "expired", client_info, ExpiredTokenException())
        if record.access_count > settings.share_token_max_access_count:
            self._refuse(token_hash, record, "exhausted", client_info, InvalidTokenException())

        needs_rotation = expires_at - now <= timedelta(days=settings.share_token_rotation_days)
        prometheus_metrics.record_token_validation("valid")
        self._audit(
            token_hash,
            record.student_id,
            record.teacher_id,
            "validate",
            True,
            client_info,
            {"access_count": record.access_count, "needs_rotation": needs_rotation},
        )
        return TokenValidation(
            student_id=record.student_id,
            teacher_id=record.teacher_id,
            needs_rotation=needs_rotation,
            expires_at=expires_at,
            access_count=record.access_count,
        )

    def _owned(self, token: str, teacher_id: Optional[str]) -> ShareToken:
        record = self._lookup(token)
        if record is None:
            raise InvalidTokenException()
        if teacher_id is not None and record.teacher_id != teacher_id:
            raise ForbiddenException("This share link belongs to another teacher")
        return record

    def _lookup(self, token: str) -> Optional[ShareToken]:
        if not is_well_formed(token):
            return None
        record = self.token_repository.get_by_hash(hash_token(token))
        if record is None or not hmac.compare_digest(record.token, token):
            return None
        return record

    def _refuse(
        self,
        token_hash: str,
        record: Optional[ShareToken],
        reason: str,
        client_info: Optional[ClientInfo],
        error: Exception,
    ) -> None:
        prometheus_metrics.record_token_validation(reason)
        self.logger.warning(
            "Share token refused",
            extra={
                "reason": reason,
                "token_hash": token_hash[:12],
                "ip_address": client_info.ip_address if client_info else None,
            },
        )
        self._audit(
            token_hash,
            record.student_id if record is not None else None,
            record.teacher_id if record is not None else None,
            "validate",
            False,
            client_info,
            {"reason": reason},
        )
        raise error

    # Audit

    def record_event(
        self,
        token: str,
        action: str,
        client_info: Optional[ClientInfo] = None,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append a booking-side audit entry for a token, e.g. ``booking_success``."""
        record = self._lookup(token)
        if action in SECURITY_ACTIONS:
            self.logger.warning(
                "Share token security event",
                extra={"action": action, "token_hash": hash_token(token or "")[:12]},
            )
        self._audit(
            hash_token(token or ""),
            record.student_id if record is not None else None,
            record.teacher_id if record is not None else None,
            action,
            success,
            client_info,
            details,
        )

    def audit_history(
        self, token: str, limit: int = 100, teacher_id: Optional[str] = None
    ) -> List[TokenAuditLog]:
        self._owned(token, teacher_id)
        return self.audit_repository.list_for_hash(hash_token(token or ""), limit=limit)

    def _audit(
        self,
        token_hash: str,
        student_id: Optional[str],
        teacher_id: Optional[str],
        action: str,
        success: bool,
        client_info: Optional[ClientInfo],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        client_info = client_info or ClientInfo()
        try:
            self.audit_repository.create(
                token_hash=token_hash,
                student_id=student_id,
                teacher_id=teacher_id,
                action=action,
                success=success,
                ip_address=client_info.ip_address,
                user_agent=client_info.user_agent,
                referer=client_info.referer,
                details=details or {},
                created_at=self.now(),
            )
            self.db.commit()
        except (SQLAlchemyError, RepositoryException) as exc:
            self.db.rollback()
            self.logger.warning(
                "Token audit write failed",
                extra={"action": action, "token_hash": token_hash[:12], "error": str(exc)},
            )
