"""ShareTokenService: issuance, rotation, validation and the audit trail."""

from datetime import timedelta

import pytest

from lessonbook.core.exceptions import (
    ExpiredTokenException,
    ForbiddenException,
    InvalidTokenException,
)
from lessonbook.models.share_token import TokenAuditLog
from lessonbook.services.share_token_service import ClientInfo, hash_token, is_well_formed
from tests.helpers import FROZEN_NOW, OTHER_TEACHER_ID, STUDENT_ID, TEACHER_ID

CLIENT = ClientInfo(ip_address="203.0.113.7", user_agent="pytest")


@pytest.fixture
def issued(services):
    return services.tokens.create(STUDENT_ID, TEACHER_ID)


class TestIssue:
    def test_new_token_is_opaque_hex(self, issued):
        assert issued.created is True
        assert is_well_formed(issued.token)
        assert len(issued.token) == 64
        assert issued.share_url.endswith(f"/book/{issued.token}")

    def test_create_returns_live_token(self, services, issued):
        again = services.tokens.create(STUDENT_ID, TEACHER_ID)
        assert again.created is False
        assert again.token == issued.token

    def test_regenerate_invalidates_previous_token(self, services, issued):
        rotated = services.tokens.regenerate(STUDENT_ID, TEACHER_ID)

        assert rotated.token != issued.token
        assert services.tokens.validate(rotated.token).student_id == STUDENT_ID
        with pytest.raises(InvalidTokenException):
            services.tokens.validate(issued.token)

    def test_expired_token_is_replaced_on_create(self, services, issued, clock):
        clock.advance(days=91)
        fresh = services.tokens.create(STUDENT_ID, TEACHER_ID)
        assert fresh.created is True
        assert fresh.token != issued.token


class TestValidate:
    def test_resolves_pair_and_counts_access(self, services, issued):
        first = services.tokens.validate(issued.token, CLIENT)
        second = services.tokens.validate(issued.token, CLIENT)

        assert (first.student_id, first.teacher_id) == (STUDENT_ID, TEACHER_ID)
        assert first.access_count == 1
        assert second.access_count == 2
        assert first.needs_rotation is False

    def test_needs_rotation_near_expiry(self, services, issued, clock):
        clock.advance(days=61)
        validation = services.tokens.validate(issued.token)
        assert validation.needs_rotation is True
        assert validation.expires_at == FROZEN_NOW + timedelta(days=90)

    def test_expired(self, services, issued, clock):
        clock.advance(days=91)
        with pytest.raises(ExpiredTokenException) as exc_info:
            services.tokens.validate(issued.token)
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("token", ["", "not-a-token", "zz" * 32])
    def test_malformed(self, services, token):
        with pytest.raises(InvalidTokenException):
            services.tokens.validate(token)

    def test_unknown_token(self, services):
        with pytest.raises(InvalidTokenException):
            services.tokens.validate("ab" * 32)

    def test_revoked_token(self, services, issued):
        services.tokens.revoke(issued.token, CLIENT, teacher_id=TEACHER_ID)
        with pytest.raises(InvalidTokenException):
            services.tokens.validate(issued.token)

    def test_only_the_issuing_teacher_may_revoke(self, services, issued):
        with pytest.raises(ForbiddenException):
            services.tokens.revoke(issued.token, teacher_id=OTHER_TEACHER_ID)
        assert services.tokens.validate(issued.token).teacher_id == TEACHER_ID


class TestAudit:
    def test_attempts_are_logged_by_hash(self, services, issued, clock, db):
        services.tokens.validate(issued.token, CLIENT)
        clock.advance(seconds=1)
        services.tokens.record_event(issued.token, "booking_success", CLIENT, details={"x": 1})

        history = services.tokens.audit_history(issued.token, teacher_id=TEACHER_ID)

        assert [entry.action for entry in history] == ["booking_success", "validate"]
        assert all(entry.token_hash == hash_token(issued.token) for entry in history)
        assert history[1].ip_address == "203.0.113.7"
        assert db.query(TokenAuditLog).filter(TokenAuditLog.token_hash == issued.token).count() == 0

    def test_failed_attempts_are_logged(self, services, db):
        with pytest.raises(InvalidTokenException):
            services.tokens.validate("ab" * 32, CLIENT)

        entry = db.query(TokenAuditLog).one()
        assert entry.success is False
        assert entry.details == {"reason": "unknown"}
        assert entry.student_id is None

    def test_history_is_owner_only(self, services, issued):
        with pytest.raises(ForbiddenException):
            services.tokens.audit_history(issued.token, teacher_id=OTHER_TEACHER_ID)
