# backend/lessonbook/repositories/share_token_repository.py
"""Share token and token audit log repositories."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.share_token import ShareToken, TokenAuditLog
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ShareTokenRepository(BaseRepository[ShareToken]):
    def __init__(self, db: Session):
        super().__init__(db, ShareToken)

    def get_by_hash(self, token_hash: str) -> Optional[ShareToken]:
        return self.find_one_by(token_hash=token_hash)

    def active_for_pair(self, student_id: str, teacher_id: str) -> Optional[ShareToken]:
        query = (
            self.db.query(ShareToken)
            .filter(
                ShareToken.student_id == student_id,
                ShareToken.teacher_id == teacher_id,
                ShareToken.is_active.is_(True),
            )
            .order_by(ShareToken.created_at.desc())
        )
        return cast(Optional[ShareToken], query.first())

    def deactivate_for_pair(self, student_id: str, teacher_id: str, revoked_at: datetime) -> int:
        try:
            result = self.db.execute(
                update(ShareToken)
                .where(
                    ShareToken.student_id == student_id,
                    ShareToken.teacher_id == teacher_id,
                    ShareToken.is_active.is_(True),
                )
                .values(is_active=False, revoked_at=revoked_at)
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to deactivate share tokens: %s", exc)
            raise RepositoryException("Failed to deactivate share tokens") from exc
        return result.rowcount or 0

    def record_access(self, token_id: str, accessed_at: datetime) -> None:
        """Atomic increment so concurrent validations never lose a count."""
        try:
            self.db.execute(
                update(ShareToken)
                .where(ShareToken.id == token_id)
                .values(
                    access_count=ShareToken.access_count + 1,
                    last_accessed=accessed_at,
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to record share token access: %s", exc)
            raise RepositoryException("Failed to record share token access") from exc
        instance = self.db.identity_map.get(self.db.identity_key(ShareToken, token_id))
        if instance is not None:
            self.db.expire(instance)


class TokenAuditLogRepository(BaseRepository[TokenAuditLog]):
    def __init__(self, db: Session):
        super().__init__(db, TokenAuditLog)

    def list_for_hash(self, token_hash: str, limit: int = 100) -> List[TokenAuditLog]:
        query = (
            self.db.query(TokenAuditLog)
            .filter(TokenAuditLog.token_hash == token_hash)
            .order_by(TokenAuditLog.created_at.desc())
            .limit(limit)
        )
        return cast(List[TokenAuditLog], self._execute_query(query))
