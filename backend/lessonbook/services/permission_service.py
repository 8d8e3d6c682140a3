# backend/lessonbook/services/permission_service.py
"""
Permission service for capability checks.

Routes declare the relationship they need between the caller and the
resource ("teacher owns this slot", "this share token grants access to this
teacher's slots") and ``require()`` evaluates it. Handlers never branch on
roles themselves.

Admins pass every check. A resource that does not exist passes too, so the
handler's own NotFound error reaches the caller.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Dict, Iterable, Optional, Union

from sqlalchemy.orm import Session

from ..core.exceptions import ForbiddenException
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class Role(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"
    ADMIN = "admin"
    SHARE_TOKEN = "share_token"


class Capability(str, Enum):
    TEACHER_OWNS_SLOT = "teacher-owns-slot"
    TEACHER_OWNS_TEMPLATE = "teacher-owns-template"
    TEACHER_OWNS_BOOKING = "teacher-owns-booking"
    TEACHER_OWNS_WAITLIST_ENTRY = "teacher-owns-waitlist-entry"
    STUDENT_OWNS_WAITLIST_ENTRY = "student-owns-waitlist-entry"
    TEACHER_OWNS_CREDIT_ACCOUNT = "teacher-owns-credit-account"
    TEACHER_ACTS_FOR_SELF = "teacher-acts-for-self"
    STUDENT_OWNS_CREDIT_ACCOUNT = "student-owns-credit-account"
    STUDENT_OWNS_BOOKING = "student-owns-booking"
    TOKEN_GRANTS_ACCESS = "token-grants-access"


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller.

    ``subject_id`` is the user id, or the student id for a share token.
    Share-token principals are also bound to ``teacher_id``.
    """

    role: Role
    subject_id: str
    teacher_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER

    @property
    def acts_as_student(self) -> bool:
        return self.role in (Role.STUDENT, Role.SHARE_TOKEN)

    @property
    def actor_role(self) -> str:
        """Role recorded on bookings this caller cancels or completes."""
        return Role.STUDENT.value if self.acts_as_student else self.role.value


class PermissionService(BaseService):
    """Evaluates caller-to-resource capabilities."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.slot_repository = RepositoryFactory.create_schedule_slot_repository(db)
        self.template_repository = RepositoryFactory.create_template_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.waitlist_repository = RepositoryFactory.create_waitlist_repository(db)
        self.account_repository = RepositoryFactory.create_credit_account_repository(db)
        self._checks: Dict[Capability, Callable[[Principal, str], bool]] = {
            Capability.TEACHER_OWNS_SLOT: self._teacher_owns_slot,
            Capability.TEACHER_OWNS_TEMPLATE: self._teacher_owns_template,
            Capability.TEACHER_OWNS_BOOKING: self._teacher_owns_booking,
            Capability.TEACHER_OWNS_WAITLIST_ENTRY: self._teacher_owns_waitlist_entry,
            Capability.TEACHER_OWNS_CREDIT_ACCOUNT: self._teacher_owns_credit_account,
            Capability.TEACHER_ACTS_FOR_SELF: self._teacher_acts_for_self,
            Capability.STUDENT_OWNS_CREDIT_ACCOUNT: self._student_owns_credit_account,
            Capability.STUDENT_OWNS_BOOKING: self._student_owns_booking,
            Capability.STUDENT_OWNS_WAITLIST_ENTRY: self._student_owns_waitlist_entry,
            Capability.TOKEN_GRANTS_ACCESS: self._token_grants_access,
        }

    def allows(
        self, principal: Principal, capability: Union[Capability, str], resource_id: str
    ) -> bool:
        if principal.is_admin:
            return True
        return self._checks[Capability(capability)](principal, resource_id)

    def require(
        self, principal: Principal, capability: Union[Capability, str], resource_id: str
    ) -> None:
        capability = Capability(capability)
        if not self.allows(principal, capability, resource_id):
            self.logger.warning(
                "Capability check failed",
                extra={
                    "capability": capability.value,
                    "role": principal.role.value,
                    "subject_id": principal.subject_id,
                    "resource_id": resource_id,
                },
            )
            raise ForbiddenException(details={"capability": capability.value})

    def require_any(
        self,
        principal: Principal,
        capabilities: Iterable[Union[Capability, str]],
        resource_id: str,
    ) -> None:
        """Pass when at least one capability holds."""
        wanted = [Capability(capability) for capability in capabilities]
        if any(self.allows(principal, capability, resource_id) for capability in wanted):
            return
        self.logger.warning(
            "No capability matched",
            extra={
                "capabilities": [capability.value for capability in wanted],
                "role": principal.role.value,
                "subject_id": principal.subject_id,
                "resource_id": resource_id,
            },
        )
        raise ForbiddenException(
            details={"capabilities": [capability.value for capability in wanted]}
        )

    # Teacher capabilities

    def _teacher_owns_slot(self, principal: Principal, slot_id: str) -> bool:
        slot = self.slot_repository.get_by_id(slot_id)
        return slot is None or (principal.is_teacher and slot.teacher_id == principal.subject_id)

    def _teacher_owns_template(self, principal: Principal, template_id: str) -> bool:
        template = self.template_repository.get_by_id(template_id)
        return template is None or (
            principal.is_teacher and template.teacher_id == principal.subject_id
        )

    def _teacher_owns_booking(self, principal: Principal, booking_id: str) -> bool:
        booking = self.booking_repository.get_by_id(booking_id)
        return booking is None or (
            principal.is_teacher and booking.teacher_id == principal.subject_id
        )

    def _teacher_owns_waitlist_entry(self, principal: Principal, entry_id: str) -> bool:
        entry = self.waitlist_repository.get_by_id(entry_id)
        return entry is None or (principal.is_teacher and entry.teacher_id == principal.subject_id)

    def _teacher_owns_credit_account(self, principal: Principal, account_id: str) -> bool:
        account = self.account_repository.get_by_id(account_id)
        return account is None or (
            principal.is_teacher and account.teacher_id == principal.subject_id
        )

    def _teacher_acts_for_self(self, principal: Principal, teacher_id: str) -> bool:
        return principal.is_teacher and principal.subject_id == teacher_id

    # Student capabilities

    def _student_owns_credit_account(self, principal: Principal, account_id: str) -> bool:
        account = self.account_repository.get_by_id(account_id)
        if account is None:
            return True
        return self._student_matches(principal, account.student_id, account.teacher_id)

    def _student_owns_booking(self, principal: Principal, booking_id: str) -> bool:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            return True
        return self._student_matches(principal, booking.student_id, booking.teacher_id)

    def _student_owns_waitlist_entry(self, principal: Principal, entry_id: str) -> bool:
        entry = self.waitlist_repository.get_by_id(entry_id)
        if entry is None:
            return True
        return self._student_matches(principal, entry.student_id, entry.teacher_id)

    def _token_grants_access(self, principal: Principal, slot_id: str) -> bool:
        slot = self.slot_repository.get_by_id(slot_id)
        if slot is None:
            return True
        return principal.role == Role.SHARE_TOKEN and slot.teacher_id == principal.teacher_id

    @staticmethod
    def _student_matches(principal: Principal, student_id: str, teacher_id: str) -> bool:
        if not principal.acts_as_student or principal.subject_id != student_id:
            return False
        # A share token is scoped to a single teacher
        return principal.role != Role.SHARE_TOKEN or principal.teacher_id == teacher_id
