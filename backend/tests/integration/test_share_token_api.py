"""Share-link issuance and booking through a share link."""

import pytest

from lessonbook.models.share_token import ShareToken
from lessonbook.services.share_token_service import hash_token
from tests.helpers import (
    OTHER_STUDENT_ID,
    OTHER_TEACHER_ID,
    STUDENT_ID,
    TEACHER_ID,
    auth_headers,
    upcoming,
)


@pytest.fixture
def share_token(client, teacher_headers):
    response = client.post(
        "/api/v1/share-tokens", json={"student_id": STUDENT_ID}, headers=teacher_headers
    )
    assert response.status_code == 201, response.text
    return response.json()["token"]


@pytest.fixture
def open_slots(client, teacher_headers):
    lesson_date = upcoming(days=8).isoformat()
    slot_ids = []
    for start, end in (("10:00", "11:00"), ("11:00", "12:00")):
        response = client.post(
            "/api/v1/slots",
            json={"date": lesson_date, "start_time": start, "end_time": end},
            headers=teacher_headers,
        )
        slot_ids.append(response.json()["id"])
    client.post(
        "/api/v1/credits/purchase",
        json={"student_id": STUDENT_ID, "hours": 3},
        headers=teacher_headers,
    )
    return slot_ids


class TestIssue:
    def test_second_request_returns_live_link(self, client, teacher_headers, share_token):
        again = client.post(
            "/api/v1/share-tokens", json={"student_id": STUDENT_ID}, headers=teacher_headers
        )
        assert again.status_code == 200
        assert again.json()["token"] == share_token
        assert again.json()["created"] is False

    def test_regenerate_rotates(self, client, teacher_headers, share_token):
        rotated = client.post(
            "/api/v1/share-tokens/regenerate",
            json={"student_id": STUDENT_ID},
            headers=teacher_headers,
        )
        assert rotated.status_code == 201
        assert rotated.json()["token"] != share_token

        stale = client.get(f"/api/v1/share-tokens/{share_token}")
        assert stale.status_code == 401
        assert stale.json()["code"] == "INVALID_TOKEN"

    def test_public_validation(self, client, share_token):
        response = client.get(f"/api/v1/share-tokens/{share_token}")
        assert response.status_code == 200
        assert response.json()["student_id"] == STUDENT_ID
        assert response.json()["teacher_id"] == TEACHER_ID
        assert response.json()["needs_rotation"] is False

    def test_students_cannot_issue_links(self, client, student_headers):
        response = client.post(
            "/api/v1/share-tokens", json={"student_id": STUDENT_ID}, headers=student_headers
        )
        assert response.status_code == 403

    def test_only_owner_revokes(self, client, share_token, teacher_headers):
        foreign = client.delete(
            f"/api/v1/share-tokens/{share_token}",
            headers=auth_headers(OTHER_TEACHER_ID, "teacher"),
        )
        assert foreign.status_code == 403

        revoked = client.delete(f"/api/v1/share-tokens/{share_token}", headers=teacher_headers)
        assert revoked.status_code == 204
        assert client.get(f"/api/v1/share-tokens/{share_token}").status_code == 401


class TestBookingWithLink:
    def test_link_lists_only_open_slots(self, client, share_token, open_slots):
        headers = {"X-Share-Token": share_token}
        client.post("/api/v1/bookings", json={"schedule_slot_id": open_slots[0]}, headers=headers)

        listed = client.get("/api/v1/slots", headers=headers)

        assert listed.status_code == 200
        assert [slot["id"] for slot in listed.json()] == [open_slots[1]]

    def test_token_in_body_books_and_is_audited(
        self, client, share_token, open_slots, teacher_headers
    ):
        response = client.post(
            "/api/v1/bookings",
            json={"token": share_token, "schedule_slot_id": open_slots[1]},
            headers={"User-Agent": "link-visitor"},
        )
        assert response.status_code == 201, response.text
        assert response.json()["remaining_credits"] == 2.0

        audit = client.get(f"/api/v1/share-tokens/{share_token}/audit", headers=teacher_headers)
        actions = [entry["action"] for entry in audit.json()]
        assert "booking_success" in actions
        assert "validate" in actions

    def test_header_and_body_token_count_as_one_access(
        self, client, db, share_token, open_slots, teacher_headers
    ):
        response = client.post(
            "/api/v1/bookings",
            json={"token": share_token, "schedule_slot_id": open_slots[0]},
            headers={"X-Share-Token": share_token},
        )
        assert response.status_code == 201, response.text

        db.expire_all()
        record = db.query(ShareToken).filter_by(token_hash=hash_token(share_token)).one()
        assert record.access_count == 1
        audit = client.get(f"/api/v1/share-tokens/{share_token}/audit", headers=teacher_headers)
        actions = [entry["action"] for entry in audit.json()]
        assert actions.count("validate") == 1

    def test_slot_offered_to_waitlist_is_hidden_from_link(self, client, share_token, open_slots):
        booked = client.post(
            "/api/v1/bookings",
            json={"token": share_token, "schedule_slot_id": open_slots[0]},
        ).json()
        lesson_date = upcoming(days=8)
        joined = client.post(
            "/api/v1/waitlist",
            json={
                "teacher_id": TEACHER_ID,
                "day_of_week": lesson_date.weekday(),
                "start_time": "10:00",
                "end_time": "11:00",
            },
            headers=auth_headers(OTHER_STUDENT_ID, "student"),
        )
        assert joined.status_code == 201, joined.text

        cancelled = client.post(
            f"/api/v1/bookings/{booked['booking_id']}/cancel",
            json={"token": share_token},
        )
        assert cancelled.status_code == 200, cancelled.text

        listed = client.get("/api/v1/slots", headers={"X-Share-Token": share_token})
        assert [slot["id"] for slot in listed.json()] == [open_slots[1]]

    def test_link_cannot_reach_another_teachers_slot(self, client, share_token):
        other = client.post(
            "/api/v1/slots",
            json={"date": upcoming(days=9).isoformat(), "start_time": "10:00", "end_time": "11:00"},
            headers=auth_headers(OTHER_TEACHER_ID, "teacher"),
        ).json()

        response = client.post(
            "/api/v1/bookings",
            json={"token": share_token, "schedule_slot_id": other["id"]},
        )
        assert response.status_code == 403

    def test_garbage_token(self, client, open_slots):
        response = client.post(
            "/api/v1/bookings",
            json={"token": "not-a-real-token", "schedule_slot_id": open_slots[0]},
        )
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"
