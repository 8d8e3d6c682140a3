"""SlotRegistryService: ad hoc slots, templates, batch availability and conflicts."""

from datetime import date, time, timedelta

import pytest

from lessonbook.core.exceptions import (
    NotFoundException,
    TimeConflictException,
    UnresolvableConflictException,
    ValidationException,
)
from lessonbook.domain.time_windows import TimeWindow, Unresolvable, auto_adjust
from lessonbook.models.schedule import ScheduleSlot, SlotStatus
from tests.helpers import (
    LESSON_END,
    LESSON_START,
    OTHER_TEACHER_ID,
    STUDENT_ID,
    TEACHER_ID,
    TUESDAY,
    WEDNESDAY,
)

MONDAY = date(2030, 1, 7)


def window(on: date, start: str, end: str) -> TimeWindow:
    return TimeWindow(
        start_time=time.fromisoformat(start), end_time=time.fromisoformat(end), date=on
    )


class TestCreateSlot:
    def test_creates_available_slot(self, services):
        slot = services.registry.create_slot(
            TEACHER_ID, TUESDAY, LESSON_START, LESSON_END, subject="Piano"
        )
        assert slot.status == SlotStatus.AVAILABLE.value
        assert slot.duration_minutes == 60
        assert slot.version == 1

    def test_rejects_past_start(self, services):
        with pytest.raises(ValidationException) as exc_info:
            services.registry.create_slot(TEACHER_ID, MONDAY, time(8), time(9))
        assert exc_info.value.code == "SLOT_IN_PAST"

    @pytest.mark.parametrize("end", [time(14, 10), time(22, 30)])
    def test_duration_limits(self, services, end):
        with pytest.raises(ValidationException) as exc_info:
            services.registry.create_slot(TEACHER_ID, TUESDAY, LESSON_START, end)
        assert exc_info.value.code == "INVALID_WINDOW"

    def test_overlap_is_rejected_unless_overridden(self, services, tuesday_slot):
        with pytest.raises(TimeConflictException):
            services.registry.create_slot(TEACHER_ID, TUESDAY, time(14, 30), time(15, 30))

        overlapping = services.registry.create_slot(
            TEACHER_ID, TUESDAY, time(14, 30), time(15, 30), override=True
        )
        assert overlapping.id != tuesday_slot.id

    def test_other_teachers_do_not_conflict(self, services, tuesday_slot):
        slot = services.registry.create_slot(OTHER_TEACHER_ID, TUESDAY, LESSON_START, LESSON_END)
        assert slot.teacher_id == OTHER_TEACHER_ID

    def test_blocked_time_conflicts(self, services):
        services.registry.block_time(TEACHER_ID, TUESDAY, time(13), time(18), reason="Dentist")
        with pytest.raises(TimeConflictException) as exc_info:
            services.registry.create_slot(TEACHER_ID, TUESDAY, LESSON_START, LESSON_END)
        conflicts = exc_info.value.details["conflicts"][0]["conflicts_by_source"]
        assert len(conflicts["blocked_time"]) == 1

    def test_whole_working_day_can_be_blocked(self, services):
        blocked = services.registry.block_time(
            TEACHER_ID, TUESDAY, time(8), time(18), reason="Holiday"
        )
        assert (blocked.start_time, blocked.end_time) == (time(8), time(18))

    def test_blocked_time_needs_start_before_end(self, services):
        with pytest.raises(ValidationException) as exc_info:
            services.registry.block_time(TEACHER_ID, TUESDAY, time(18), time(8))
        assert exc_info.value.code == "INVALID_WINDOW"

    def test_delete_unbooked_slot(self, services, tuesday_slot, db):
        services.registry.delete_slot(tuesday_slot.id)
        assert db.get(ScheduleSlot, tuesday_slot.id) is None

    def test_booked_slot_cannot_be_deleted(self, services, tuesday_slot, funded_account):
        services.engine.book(tuesday_slot.id, STUDENT_ID)
        with pytest.raises(ValidationException) as exc_info:
            services.registry.delete_slot(tuesday_slot.id)
        assert exc_info.value.code == "SLOT_NOT_DELETABLE"


class TestTemplates:
    def test_materializes_weekly_occurrences(self, services):
        result = services.registry.create_template(
            TEACHER_ID, 1, LESSON_START, LESSON_END, subject="Theory", weeks=4
        )
        assert result.planned == [TUESDAY + timedelta(weeks=week) for week in range(4)]
        assert len(result.created) == 4
        assert all(slot.parent_template_id == result.template_id for slot in result.created)

    def test_exception_dates_are_skipped(self, services):
        result = services.registry.create_template(
            TEACHER_ID, 1, LESSON_START, LESSON_END, weeks=3, exception_dates=[TUESDAY]
        )
        assert result.skipped == [{"date": TUESDAY.isoformat(), "reason": "exception_date"}]
        assert len(result.created) == 2

    def test_todays_past_occurrence_is_skipped(self, services):
        result = services.registry.create_template(TEACHER_ID, 0, time(8), time(9), weeks=2)
        assert result.skipped[0] == {"date": MONDAY.isoformat(), "reason": "past"}
        assert result.planned == [MONDAY + timedelta(weeks=1)]

    def test_preview_writes_nothing(self, services, db):
        result = services.registry.create_template(
            TEACHER_ID, 1, LESSON_START, LESSON_END, weeks=2, preview_only=True
        )
        assert result.preview_only is True
        assert len(result.planned) == 2
        assert result.created == []
        assert db.query(ScheduleSlot).count() == 0
        assert services.registry.list_templates(TEACHER_ID) == []

    def test_non_recurring_template_materializes_once(self, services):
        result = services.registry.create_template(
            TEACHER_ID, 2, LESSON_START, LESSON_END, is_recurring=False, weeks=4
        )
        assert result.planned == [WEDNESDAY]

    def test_rematerializing_is_idempotent(self, services):
        template_id = services.registry.create_template(
            TEACHER_ID, 1, LESSON_START, LESSON_END, weeks=2
        ).template_id

        again = services.registry.materialize(template_id, weeks=2)
        assert again.created == []
        assert {item["reason"] for item in again.skipped} == {"exists"}
        assert services.registry.materialize_rolling_window() == 2  # weeks 3 and 4
        assert services.registry.materialize_rolling_window() == 0

    def test_template_conflict_with_existing_slot(self, services, tuesday_slot):
        with pytest.raises(TimeConflictException):
            services.registry.create_template(TEACHER_ID, 1, time(14, 30), time(15, 30))

    def test_cascade_update_regenerates_unbooked_slots(self, services, funded_account):
        result = services.registry.create_template(
            TEACHER_ID, 1, LESSON_START, LESSON_END, weeks=4
        )
        booked = result.created[0]
        services.engine.book(booked.id, STUDENT_ID)

        services.registry.update_template(result.template_id, cascade=True, start_time=time(13))

        slots = services.registry.list_slots(TEACHER_ID, statuses=[SlotStatus.AVAILABLE.value])
        assert {slot.start_time for slot in slots} == {time(13)}
        assert len(slots) == 3
        # the booked occurrence keeps its original time
        assert services.registry.get_slot(booked.id).start_time == LESSON_START

    def test_update_rejects_unknown_fields(self, services):
        template_id = services.registry.create_template(
            TEACHER_ID, 1, LESSON_START, LESSON_END, weeks=1
        ).template_id
        with pytest.raises(ValidationException) as exc_info:
            services.registry.update_template(template_id, colour="red")
        assert exc_info.value.code == "INVALID_FIELDS"

    def test_delete_cascade_keeps_booked_slots(self, services, funded_account):
        result = services.registry.create_template(
            TEACHER_ID, 1, LESSON_START, LESSON_END, weeks=3
        )
        services.engine.book(result.created[1].id, STUDENT_ID)

        removed = services.registry.delete_template(result.template_id, cascade=True)

        assert removed == 2
        with pytest.raises(NotFoundException):
            services.registry.get_template(result.template_id)
        remaining = services.registry.list_slots(TEACHER_ID)
        assert [slot.id for slot in remaining] == [result.created[1].id]

    def test_weeks_out_of_range(self, services):
        with pytest.raises(ValidationException) as exc_info:
            services.registry.create_template(TEACHER_ID, 1, LESSON_START, LESSON_END, weeks=53)
        assert exc_info.value.code == "INVALID_WEEKS"


class TestCreateAvailability:
    def test_batch_is_all_or_nothing(self, services, tuesday_slot, db):
        windows = [
            window(WEDNESDAY, "10:00", "11:00"),
            window(TUESDAY, "14:30", "15:30"),
        ]
        with pytest.raises(TimeConflictException) as exc_info:
            services.registry.create_availability(TEACHER_ID, windows)

        assert len(exc_info.value.details["conflicts"]) == 1
        assert db.query(ScheduleSlot).count() == 1

    def test_override_creates_everything(self, services, tuesday_slot):
        windows = [window(WEDNESDAY, "10:00", "11:00"), window(TUESDAY, "14:30", "15:30")]
        result = services.registry.create_availability(TEACHER_ID, windows, override=True)
        assert len(result.slots) == 2
        assert len(result.conflicts) == 1

    def test_windows_in_one_request_conflict_with_each_other(self, services):
        windows = [window(TUESDAY, "10:00", "11:00"), window(TUESDAY, "10:30", "11:30")]
        reports = services.registry.conflict_detector.check(TEACHER_ID, windows)
        assert all(report.has_conflicts for report in reports)
        assert reports[0].conflicts[0].source.value == "request"

    def test_auto_adjust_shifts_to_free_time(self, services, tuesday_slot):
        result = services.registry.create_availability(
            TEACHER_ID, [window(TUESDAY, "14:00", "15:00")], strategy="auto_adjust"
        )
        created = result.slots[0]
        assert (created.start_time, created.end_time) == (time(15), time(16))

    def test_auto_adjust_without_room_is_unresolvable(self, services):
        services.registry.block_time(TEACHER_ID, TUESDAY, time(6), time(22))
        with pytest.raises(UnresolvableConflictException):
            services.registry.create_availability(
                TEACHER_ID,
                [window(TUESDAY, "10:00", "11:00")],
                strategy="auto_adjust",
                max_adjustment_minutes=120,
            )

    def test_detector_adjusts_like_domain_auto_adjust(self, services, tuesday_slot):
        candidate = window(TUESDAY, "14:00", "15:00")
        detector = services.registry.conflict_detector
        existing = detector.load_existing(TEACHER_ID, [candidate], include_adjacent_days=False)

        report = detector.check(
            TEACHER_ID, [candidate], strategy="auto_adjust", existing=existing
        )[0]

        assert report.adjusted == auto_adjust(candidate, existing)
        assert report.suggestions == []

    def test_detector_marks_unresolvable_like_domain_auto_adjust(self, services):
        services.registry.block_time(TEACHER_ID, TUESDAY, time(6), time(22))
        candidate = window(TUESDAY, "10:00", "11:00")
        detector = services.registry.conflict_detector
        existing = detector.load_existing(TEACHER_ID, [candidate], include_adjacent_days=False)

        report = detector.check(
            TEACHER_ID, [candidate], strategy="auto_adjust", existing=existing
        )[0]

        assert isinstance(auto_adjust(candidate, existing), Unresolvable)
        assert report.unresolvable is True
        assert report.adjusted is None

    def test_merge_folds_open_slots(self, services, tuesday_slot):
        result = services.registry.create_availability(
            TEACHER_ID, [window(TUESDAY, "14:30", "16:00")], strategy="merge", override=True
        )

        assert result.cancelled_slot_ids == [tuesday_slot.id]
        merged = result.slots[0]
        assert (merged.start_time, merged.end_time) == (time(14), time(16))
        assert services.registry.get_slot(tuesday_slot.id, fresh=True).status == "cancelled"

    def test_weekly_window_creates_template(self, services):
        weekly = TimeWindow(start_time=time(9), end_time=time(10), day_of_week=4)
        result = services.registry.create_availability(TEACHER_ID, [weekly], weeks=2)
        assert len(result.templates) == 1
        assert len(result.slots) == 2
        assert all(slot.date.weekday() == 4 for slot in result.slots)

    def test_suggestions_for_conflicts(self, services, tuesday_slot):
        reports = services.registry.conflict_detector.check(
            TEACHER_ID, [window(TUESDAY, "14:00", "15:00")], strategy="suggest_alternatives"
        )
        suggestions = reports[0].suggestions
        assert suggestions
        assert all(not s.window.overlaps(window(TUESDAY, "14:00", "15:00")) for s in suggestions)
