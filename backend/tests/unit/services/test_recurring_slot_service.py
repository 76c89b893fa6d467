# backend/tests/unit/services/test_recurring_slot_service.py
from datetime import date

import pytest

from lessonbook.core.exceptions import NotFoundException, ValidationException
from lessonbook.models.job_log import BackgroundJobLog
from lessonbook.models.lesson import Lesson, LessonStatus
from lessonbook.models.recurring_slot import RecurringSlotStatus
from lessonbook.services.booking_service import BookingMode
from lessonbook.services.recurring_slot_service import (
    FUTURE_LESSONS_JOB,
    RecurringSlotService,
    generate_occurrences,
)
from tests.factories import add_window, make_student, make_teacher, utc

NY = "America/New_York"
NOW = utc(2026, 1, 1, 12)
THURSDAY_1400 = utc(2026, 1, 8, 19)


@pytest.fixture
def slot_service(db, notification_service):
    return RecurringSlotService(db, notification_service=notification_service)


def book_weekly(booking_service, teacher, student, weeks, start=THURSDAY_1400):
    return booking_service.book_lesson(
        teacher.id, student.id, start, 60, BookingMode.RECURRING, recurring_weeks=weeks, now=NOW
    )


class TestGenerateOccurrences:
    def test_starts_at_first_matching_local_time(self):
        # Friday 2026-01-02: Thursday has passed locally, so the run starts a week later
        plan = generate_occurrences(4, "14:00", NY, utc(2026, 1, 2, 12), 3)
        assert plan.starts == [utc(2026, 1, 8, 19), utc(2026, 1, 15, 19), utc(2026, 1, 22, 19)]
        assert plan.skipped_dates == []

    def test_from_instant_equal_to_occurrence_is_included(self):
        plan = generate_occurrences(4, "14:00", NY, THURSDAY_1400, 1)
        assert plan.starts == [THURSDAY_1400]

    def test_spring_forward_gap_is_skipped_not_shifted(self):
        # Sunday 02:30 does not exist on 2026-03-08 in New York
        plan = generate_occurrences(0, "02:30", NY, utc(2026, 2, 28, 12), 3)
        assert plan.starts == [utc(2026, 3, 1, 7, 30), utc(2026, 3, 15, 6, 30)]
        assert plan.skipped_dates == [date(2026, 3, 8)]

    def test_fall_back_keeps_wall_clock(self):
        plan = generate_occurrences(4, "09:00", NY, utc(2026, 10, 25), 2)
        assert plan.starts == [utc(2026, 10, 29, 13), utc(2026, 11, 5, 14)]

    def test_southern_hemisphere_rules(self):
        # Sydney leaves daylight saving on 2026-04-05
        plan = generate_occurrences(1, "18:00", "Australia/Sydney", utc(2026, 3, 29), 2)
        assert plan.starts == [utc(2026, 3, 30, 7), utc(2026, 4, 6, 8)]

    def test_zero_count(self):
        assert generate_occurrences(4, "14:00", NY, NOW, 0).starts == []

    def test_rejects_bad_input(self):
        with pytest.raises(ValidationException):
            generate_occurrences(4, "14:00", NY, NOW, -1)
        with pytest.raises(ValidationException):
            generate_occurrences(9, "14:00", NY, NOW, 1)
        with pytest.raises(ValidationException):
            generate_occurrences(4, "2pm", NY, NOW, 1)


@pytest.mark.usefixtures("weekday_availability")
class TestCancelRecurringSlot:
    def test_cancel_keeps_existing_lessons_by_default(self, db, booking_service, slot_service, teacher, student):
        booked = book_weekly(booking_service, teacher, student, 3)

        result = slot_service.cancel_recurring_slot(booked.recurring_slot.id, teacher.id, now=NOW)

        assert result.slot.status == RecurringSlotStatus.CANCELLED.value
        assert result.slot.cancelled_at == NOW
        assert result.cancelled_lesson_ids == []
        statuses = {db.get(Lesson, lesson.id).status for lesson in booked.lessons}
        assert statuses == {LessonStatus.SCHEDULED.value}

    def test_cancel_future_lessons(self, db, booking_service, slot_service, enqueue, teacher, student):
        booked = book_weekly(booking_service, teacher, student, 3)
        enqueue.reset_mock()
        after_first = utc(2026, 1, 9)

        result = slot_service.cancel_recurring_slot(
            booked.recurring_slot.id, teacher.id, cancel_future_lessons=True, reason="Moving", now=after_first
        )

        assert result.cancelled_lesson_ids == [lesson.id for lesson in booked.lessons[1:]]
        assert db.get(Lesson, booked.lessons[0].id).status == LessonStatus.SCHEDULED.value
        assert enqueue.call_args.args[2]["cancelled_count"] == 2

    def test_cancel_twice(self, booking_service, slot_service, teacher, student):
        booked = book_weekly(booking_service, teacher, student, 1)
        slot_service.cancel_recurring_slot(booked.recurring_slot.id, teacher.id, now=NOW)
        with pytest.raises(ValidationException) as exc_info:
            slot_service.cancel_recurring_slot(booked.recurring_slot.id, teacher.id, now=NOW)
        assert exc_info.value.code == "SLOT_NOT_ACTIVE"

    def test_other_teacher_cannot_see_slot(self, db, booking_service, slot_service, teacher, student):
        booked = book_weekly(booking_service, teacher, student, 1)
        other = make_teacher(db, email="other@example.com")
        with pytest.raises(NotFoundException):
            slot_service.cancel_recurring_slot(booked.recurring_slot.id, other.id, now=NOW)


@pytest.mark.usefixtures("weekday_availability")
class TestGenerateFutureLessons:
    def test_tops_up_missing_weeks(self, db, booking_service, slot_service, teacher, student):
        book_weekly(booking_service, teacher, student, 2)

        # Horizon is Jan 29 12:00Z, so Jan 22 is the only new week
        result = slot_service.generate_future_lessons(now=NOW, weeks=4)

        assert result.success
        assert result.lessons_generated == 1
        assert result.teachers_processed == 1
        created = db.query(Lesson).filter(Lesson.start_utc == utc(2026, 1, 22, 19)).one()
        assert created.is_recurring and created.price == 9000

    def test_is_idempotent(self, booking_service, slot_service, teacher, student):
        book_weekly(booking_service, teacher, student, 2)
        slot_service.generate_future_lessons(now=NOW, weeks=4)

        again = slot_service.generate_future_lessons(now=NOW, weeks=4)

        assert again.lessons_generated == 0
        assert again.success

    def test_cancelled_occurrence_is_not_regenerated(self, booking_service, slot_service, teacher, student):
        booked = book_weekly(booking_service, teacher, student, 3)
        booking_service.cancel_lesson(booked.lessons[2].id, teacher_id=teacher.id, now=NOW)

        result = slot_service.generate_future_lessons(now=NOW, weeks=4)

        assert result.lessons_generated == 0

    def test_conflicts_reported_as_errors(self, db, booking_service, slot_service, teacher, student):
        book_weekly(booking_service, teacher, student, 1)
        other = make_student(db, teacher, name="Johannes", email="johannes@example.com")
        booking_service.book_lesson(teacher.id, other.id, utc(2026, 1, 15, 19), 60, now=NOW)

        result = slot_service.generate_future_lessons(now=NOW, weeks=4)

        assert not result.success
        assert result.lessons_generated == 1
        assert len(result.errors) == 1
        assert "2026-01-15 conflicts" in result.errors[0]

    def test_cancelled_slots_are_ignored(self, booking_service, slot_service, teacher, student):
        booked = book_weekly(booking_service, teacher, student, 1)
        slot_service.cancel_recurring_slot(booked.recurring_slot.id, teacher.id, now=NOW)

        result = slot_service.generate_future_lessons(now=NOW, weeks=4)

        assert result.lessons_generated == 0
        assert result.teachers_processed == 0

    def test_records_job_log(self, db, booking_service, slot_service, teacher, student):
        book_weekly(booking_service, teacher, student, 1)

        result = slot_service.generate_future_lessons(now=NOW, weeks=3)

        log = db.query(BackgroundJobLog).filter(BackgroundJobLog.job_name == FUTURE_LESSONS_JOB).one()
        assert log.lessons_generated == result.lessons_generated == 1
        assert log.success
        assert result.to_dict()["lessonsGenerated"] == 1

    def test_gap_week_beyond_horizon_is_not_reported(self, db, booking_service, slot_service, teacher, student):
        add_window(db, teacher, 0, "02:00", "04:00")
        start = utc(2026, 3, 1, 7, 30)  # Sunday 02:30 local, a week before spring-forward
        booking_service.book_lesson(
            teacher.id, student.id, start, 60, BookingMode.RECURRING, recurring_weeks=1, now=utc(2026, 2, 28, 12)
        )

        result = slot_service.generate_future_lessons(now=utc(2026, 2, 28, 12), weeks=1)

        assert result.success
        assert result.errors == []
        assert result.lessons_generated == 0

    def test_gap_week_inside_horizon_is_reported(self, db, booking_service, slot_service, teacher, student):
        add_window(db, teacher, 0, "02:00", "04:00")
        start = utc(2026, 3, 1, 7, 30)
        booking_service.book_lesson(
            teacher.id, student.id, start, 60, BookingMode.RECURRING, recurring_weeks=1, now=utc(2026, 2, 28, 12)
        )

        result = slot_service.generate_future_lessons(now=utc(2026, 2, 28, 12), weeks=2)

        assert not result.success
        assert result.lessons_generated == 0
        assert len(result.errors) == 1
        assert "does not exist on 2026-03-08" in result.errors[0]
