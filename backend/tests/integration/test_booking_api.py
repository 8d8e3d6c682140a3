"""End-to-end booking flows through the HTTP API."""

import pytest

from tests.helpers import OTHER_STUDENT_ID, STUDENT_ID, auth_headers, upcoming

PROBLEM_JSON = "application/problem+json"
MISSING_ID = "01HZZZZZZZZZZZZZZZZZZZZZZZ"


@pytest.fixture
def lesson_date():
    return upcoming(days=7).isoformat()


@pytest.fixture
def api_slot(client, teacher_headers, lesson_date):
    response = client.post(
        "/api/v1/slots",
        json={"date": lesson_date, "start_time": "14:00", "end_time": "15:00"},
        headers=teacher_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def api_account(client, teacher_headers):
    response = client.post(
        "/api/v1/credits/purchase",
        json={"student_id": STUDENT_ID, "hours": 5, "payment_reference": "inv-1"},
        headers=teacher_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["account_id"]


class TestBookingFlow:
    def test_book_then_cancel(self, client, student_headers, api_slot, api_account):
        booked = client.post(
            "/api/v1/bookings", json={"schedule_slot_id": api_slot["id"]}, headers=student_headers
        )
        assert booked.status_code == 201, booked.text
        body = booked.json()
        assert body["credits_deducted"] == 1.0
        assert body["remaining_credits"] == 4.0

        cancelled = client.post(
            f"/api/v1/bookings/{body['booking_id']}/cancel",
            json={"reason": "Sick"},
            headers=student_headers,
        )
        assert cancelled.status_code == 200, cancelled.text
        assert cancelled.json()["refunded"] == 1.0
        assert cancelled.json()["remaining_credits"] == 5.0
        assert cancelled.json()["relisted_slot_id"]

        detail = client.get(f"/api/v1/bookings/{body['booking_id']}", headers=student_headers)
        assert detail.json()["status"] == "cancelled"
        assert detail.json()["cancelled_by"] == STUDENT_ID

    def test_slot_can_only_be_booked_once(
        self, client, teacher_headers, student_headers, api_slot, api_account
    ):
        client.post(
            "/api/v1/credits/purchase",
            json={"student_id": OTHER_STUDENT_ID, "hours": 2},
            headers=teacher_headers,
        )
        first = client.post(
            "/api/v1/bookings", json={"schedule_slot_id": api_slot["id"]}, headers=student_headers
        )
        second = client.post(
            "/api/v1/bookings",
            json={"schedule_slot_id": api_slot["id"]},
            headers=auth_headers(OTHER_STUDENT_ID, "student"),
        )

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.headers["content-type"].startswith(PROBLEM_JSON)
        assert second.json()["code"] == "SLOT_UNAVAILABLE"

    def test_booking_without_account(self, client, student_headers, api_slot):
        response = client.post(
            "/api/v1/bookings", json={"schedule_slot_id": api_slot["id"]}, headers=student_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "NO_CREDIT_ACCOUNT"

    def test_teacher_lists_and_completes_nothing_early(
        self, client, teacher_headers, student_headers, api_slot, api_account
    ):
        booking_id = client.post(
            "/api/v1/bookings", json={"schedule_slot_id": api_slot["id"]}, headers=student_headers
        ).json()["booking_id"]

        listed = client.get("/api/v1/bookings", headers=teacher_headers)
        assert [row["id"] for row in listed.json()] == [booking_id]

        early = client.post(f"/api/v1/bookings/{booking_id}/complete", headers=teacher_headers)
        assert early.status_code == 400
        assert early.json()["code"] == "LESSON_NOT_STARTED"


class TestErrors:
    def test_unauthenticated(self, client, api_slot):
        response = client.post("/api/v1/bookings", json={"schedule_slot_id": api_slot["id"]})
        assert response.status_code == 401
        assert response.json()["code"] == "NOT_AUTHENTICATED"

    def test_bad_bearer_token(self, client):
        response = client.get("/api/v1/bookings", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_teachers_cannot_book(self, client, teacher_headers, api_slot):
        response = client.post(
            "/api/v1/bookings", json={"schedule_slot_id": api_slot["id"]}, headers=teacher_headers
        )
        assert response.status_code == 403
        assert response.json()["code"] == "STUDENT_REQUIRED"

    def test_students_cannot_create_slots(self, client, student_headers, lesson_date):
        response = client.post(
            "/api/v1/slots",
            json={"date": lesson_date, "start_time": "09:00", "end_time": "10:00"},
            headers=student_headers,
        )
        assert response.status_code == 403

    def test_validation_errors_are_problem_json(self, client, student_headers):
        response = client.post(
            "/api/v1/bookings", json={"schedule_slot_id": "short"}, headers=student_headers
        )
        assert response.status_code == 422
        assert response.headers["content-type"].startswith(PROBLEM_JSON)
        problem = response.json()
        assert problem["code"] == "VALIDATION_ERROR"
        assert problem["instance"] == "/api/v1/bookings"
        assert problem["details"]["errors"]

    def test_unknown_booking(self, client, student_headers):
        response = client.get(f"/api/v1/bookings/{MISSING_ID}", headers=student_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "BOOKING_NOT_FOUND"

    def test_overlapping_slot(self, client, teacher_headers, api_slot, lesson_date):
        response = client.post(
            "/api/v1/slots",
            json={"date": lesson_date, "start_time": "14:30", "end_time": "15:30"},
            headers=teacher_headers,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "TIME_CONFLICT"


class TestCreditsApi:
    def test_student_sees_own_balance_and_history(
        self, client, student_headers, teacher_headers, api_account
    ):
        mine = client.get("/api/v1/credits/me", headers=student_headers)
        assert [row["balance_hours"] for row in mine.json()] == [5.0]

        adjusted = client.post(
            f"/api/v1/credits/{api_account}/adjust",
            json={"hours": -1.5, "description": "Late fee"},
            headers=teacher_headers,
        )
        assert adjusted.json()["balance_after"] == 3.5

        history = client.get(
            f"/api/v1/credits/{api_account}/transactions", headers=student_headers
        ).json()
        assert {row["transaction_type"] for row in history} == {"purchase", "adjustment"}

        integrity = client.get(f"/api/v1/credits/{api_account}/integrity", headers=teacher_headers)
        assert integrity.json()["consistent"] is True

    def test_other_students_cannot_read_account(self, client, api_account):
        response = client.get(
            f"/api/v1/credits/{api_account}/balance",
            headers=auth_headers(OTHER_STUDENT_ID, "student"),
        )
        assert response.status_code == 403


class TestWaitlistApi:
    def test_join_only_when_pattern_is_full(
        self, client, student_headers, teacher_headers, api_slot, api_account
    ):
        other_headers = auth_headers(OTHER_STUDENT_ID, "student")
        join = {
            "teacher_id": "teacher-1",
            "day_of_week": upcoming(days=7).weekday(),
            "start_time": "14:00",
            "end_time": "15:00",
        }
        early = client.post("/api/v1/waitlist", json=join, headers=other_headers)
        assert early.status_code == 409
        assert early.json()["code"] == "SLOT_CURRENTLY_AVAILABLE"

        client.post(
            "/api/v1/bookings", json={"schedule_slot_id": api_slot["id"]}, headers=student_headers
        )
        joined = client.post("/api/v1/waitlist", json=join, headers=other_headers)
        assert joined.status_code == 201, joined.text
        assert joined.json()["position"] == 1

        queue = client.get("/api/v1/waitlist", headers=teacher_headers).json()
        assert [entry["student_id"] for entry in queue] == [OTHER_STUDENT_ID]
