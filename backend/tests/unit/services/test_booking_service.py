# backend/tests/unit/services/test_booking_service.py
"""
BookingService end to end against SQLite: availability, conflict detection,
the lock/race paths, recurring materialization and cancellation.

Dates are in January-March 2026 for a New York teacher (UTC-5 until the
March 8 spring-forward, UTC-4 after).
"""

from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from lessonbook.core.exceptions import (
    AvailabilityException,
    BookingConflictException,
    DuplicateRecurringSlotException,
    ForbiddenException,
    MissingLessonSettingsException,
    NotFoundException,
    ValidationException,
)
from lessonbook.models.lesson import Lesson, LessonStatus
from lessonbook.models.recurring_slot import RecurringSlotStatus
from lessonbook.services.booking_service import BookingMode, BookingService
from lessonbook.services.conflict_checker import ConflictChecker, LessonConflict
from lessonbook.services.notification_service import NotificationService
from lessonbook.services.recurring_slot_service import SKIP_CONFLICT
from lessonbook.services.template_service import TemplateType
from lessonbook.services.timezone_service import TimezoneService
from tests.factories import allow_lock, deny_lock, make_student, make_teacher, utc

NOW = utc(2026, 1, 1, 12)
MONDAY_1000 = utc(2026, 1, 5, 15)
THURSDAY_1400 = utc(2026, 1, 8, 19)


def sent_templates(enqueue: Mock):
    return [call.args[0] for call in enqueue.call_args_list]


@pytest.mark.usefixtures("weekday_availability")
class TestSingleBooking:
    def test_books_lesson_with_invoice(self, db, booking_service, teacher, student):
        result = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)

        lesson = result.lesson
        assert result.mode == BookingMode.SINGLE
        assert lesson.status == LessonStatus.SCHEDULED.value
        assert lesson.end_utc == MONDAY_1000 + timedelta(minutes=30)
        assert lesson.price == 5000
        assert lesson.timezone == teacher.timezone
        assert not lesson.is_recurring

        invoice = result.invoice
        assert invoice.invoice_number == "INV-2026-001"
        assert invoice.month == "2026-01"
        assert invoice.total == invoice.subtotal == 5000
        assert [item.description for item in invoice.items] == ["Lesson - Jan 05, 2026"]
        assert invoice.items[0].lesson_id == lesson.id

    def test_sixty_minute_lesson_uses_sixty_minute_price(self, booking_service, teacher, student):
        result = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 60, now=NOW)
        assert result.lesson.price == 9000
        assert result.invoice.total == 9000

    def test_longer_lessons_use_sixty_minute_tier(self, booking_service, teacher, student):
        result = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 45, now=NOW)
        assert result.lesson.price == 9000

    def test_overlapping_booking_is_a_conflict(self, booking_service, teacher, student):
        booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)

        with pytest.raises(BookingConflictException) as exc_info:
            booking_service.book_lesson(
                teacher.id, student.id, MONDAY_1000 + timedelta(minutes=15), 30, now=NOW
            )

        assert exc_info.value.code == "CONFLICT"
        assert exc_info.value.status_code == 409
        assert len(exc_info.value.details["conflicts"]) == 1

    def test_back_to_back_bookings_succeed(self, booking_service, teacher, student):
        booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)
        result = booking_service.book_lesson(
            teacher.id, student.id, MONDAY_1000 + timedelta(minutes=30), 30, now=NOW
        )
        assert result.invoice.invoice_number == "INV-2026-002"

    def test_outside_availability_is_not_a_conflict(self, booking_service, teacher, student):
        # Tuesday 08:00 local, before the 09:00 window opens
        with pytest.raises(AvailabilityException) as exc_info:
            booking_service.book_lesson(teacher.id, student.id, utc(2026, 1, 6, 13), 30, now=NOW)
        assert exc_info.value.code == "OUTSIDE_AVAILABILITY"
        assert exc_info.value.status_code == 400

    def test_weekend_rejected(self, booking_service, teacher, student):
        with pytest.raises(AvailabilityException):
            booking_service.book_lesson(teacher.id, student.id, utc(2026, 1, 10, 15), 30, now=NOW)

    def test_notifications_queued_after_commit(self, booking_service, enqueue, teacher, student):
        booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)

        assert sent_templates(enqueue) == [
            TemplateType.LESSON_BOOKING.value,
            TemplateType.INVOICE_CREATED.value,
        ]
        _, to_email, variables = enqueue.call_args_list[0].args
        assert to_email == student.email
        assert variables["lesson_date"] == "Monday, January 5, 2026"
        assert variables["lesson_time"] == "10:00 AM"

    def test_notification_failure_does_not_fail_booking(self, db, teacher, student):
        failing = NotificationService(db, enqueue=Mock(side_effect=RuntimeError("broker down")))
        service = BookingService(db, notification_service=failing, lock_factory=allow_lock)

        result = service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)

        assert db.get(Lesson, result.lesson.id).status == LessonStatus.SCHEDULED.value


@pytest.mark.usefixtures("weekday_availability")
class TestBookingValidation:
    @pytest.mark.parametrize("duration", [0, 15, 121])
    def test_duration_bounds(self, booking_service, teacher, student, duration):
        with pytest.raises(ValidationException) as exc_info:
            booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, duration, now=NOW)
        assert exc_info.value.code == "INVALID_DURATION"

    def test_recurring_weeks_bounds(self, booking_service, teacher, student):
        with pytest.raises(ValidationException) as exc_info:
            booking_service.book_lesson(
                teacher.id, student.id, THURSDAY_1400, 60, BookingMode.RECURRING, recurring_weeks=53, now=NOW
            )
        assert exc_info.value.code == "INVALID_RECURRING_WEEKS"

    def test_naive_start_rejected(self, booking_service, teacher, student):
        with pytest.raises(ValidationException):
            booking_service.book_lesson(
                teacher.id, student.id, MONDAY_1000.replace(tzinfo=None), 30, now=NOW
            )

    @pytest.mark.parametrize("mode", [BookingMode.SINGLE, BookingMode.RECURRING])
    def test_start_off_the_minute_rejected(self, db, booking_service, teacher, student, mode):
        with pytest.raises(ValidationException) as exc_info:
            booking_service.book_lesson(
                teacher.id, student.id, MONDAY_1000.replace(second=30), 30, mode, now=NOW
            )
        assert exc_info.value.code == "UNALIGNED_START"
        assert db.query(Lesson).count() == 0

    def test_unknown_teacher(self, booking_service, student):
        with pytest.raises(NotFoundException):
            booking_service.book_lesson("01HZZZZZZZZZZZZZZZZZZZZZZZ", student.id, MONDAY_1000, 30, now=NOW)

    def test_student_of_another_teacher(self, db, booking_service, teacher):
        other_teacher = make_teacher(db, email="other@example.com")
        stranger = make_student(db, other_teacher, email="stranger@example.com")
        with pytest.raises(NotFoundException):
            booking_service.book_lesson(teacher.id, stranger.id, MONDAY_1000, 30, now=NOW)

    def test_missing_lesson_settings(self, db, booking_service):
        unpriced = make_teacher(db, email="new@example.com", price_30_min=None, price_60_min=None)
        pupil = make_student(db, unpriced)
        with pytest.raises(MissingLessonSettingsException) as exc_info:
            booking_service.book_lesson(unpriced.id, pupil.id, MONDAY_1000, 30, now=NOW)
        assert exc_info.value.code == "MISSING_LESSON_SETTINGS"


@pytest.mark.usefixtures("weekday_availability")
class TestBookingRaces:
    def test_lock_held_elsewhere_is_race_lost(self, db, notification_service, teacher, student):
        service = BookingService(db, notification_service=notification_service, lock_factory=deny_lock)

        with pytest.raises(BookingConflictException) as exc_info:
            service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)

        assert exc_info.value.code == "BOOKING_RACE_LOST"
        assert db.query(Lesson).filter(Lesson.teacher_id == teacher.id).count() == 0

    def test_conflict_appearing_inside_transaction_is_race_lost(
        self, db, notification_service, teacher, student
    ):
        checker = Mock(spec=ConflictChecker)
        checker.find_conflicts.side_effect = [
            [],
            [
                LessonConflict(
                    lesson_id="01HX0000000000000000000000",
                    start_utc=MONDAY_1000,
                    end_utc=MONDAY_1000 + timedelta(minutes=30),
                    student_id=student.id,
                    status=LessonStatus.SCHEDULED.value,
                )
            ],
        ]
        service = BookingService(
            db,
            notification_service=notification_service,
            conflict_checker=checker,
            lock_factory=allow_lock,
        )

        with pytest.raises(BookingConflictException) as exc_info:
            service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)

        assert exc_info.value.race_lost
        assert db.query(Lesson).filter(Lesson.teacher_id == teacher.id).count() == 0

    def test_unique_index_violation_is_race_lost(self, db, notification_service, teacher, student):
        db.add(
            Lesson(
                teacher_id=teacher.id,
                student_id=student.id,
                start_utc=MONDAY_1000,
                duration=30,
                timezone=teacher.timezone,
                price=5000,
            )
        )
        db.commit()
        checker = Mock(spec=ConflictChecker)
        checker.find_conflicts.return_value = []
        service = BookingService(
            db,
            notification_service=notification_service,
            conflict_checker=checker,
            lock_factory=allow_lock,
        )

        with pytest.raises(BookingConflictException) as exc_info:
            service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)

        assert exc_info.value.code == "BOOKING_RACE_LOST"
        scheduled = db.query(Lesson).filter(
            Lesson.teacher_id == teacher.id, Lesson.status == LessonStatus.SCHEDULED.value
        )
        assert scheduled.count() == 1


@pytest.mark.usefixtures("weekday_availability")
class TestRecurringBooking:
    def test_creates_slot_and_twelve_weekly_lessons(self, booking_service, enqueue, teacher, student):
        result = booking_service.book_lesson(
            teacher.id, student.id, THURSDAY_1400, 60, BookingMode.RECURRING, now=NOW
        )

        slot = result.recurring_slot
        assert slot.status == RecurringSlotStatus.ACTIVE.value
        assert (slot.day_of_week, slot.start_time, slot.duration) == (4, "14:00", 60)
        assert slot.per_lesson_price == 9000
        assert result.invoice is None

        lessons = result.lessons
        assert len(lessons) == 12
        assert lessons[0].start_utc == THURSDAY_1400
        assert result.lesson is lessons[0]
        local = [TimezoneService.utc_to_local(lesson.start_utc, teacher.timezone) for lesson in lessons]
        assert all(value.strftime("%H:%M") == "14:00" for value in local)
        assert all((b.date() - a.date()).days == 7 for a, b in zip(local, local[1:]))
        assert all(lesson.recurring_slot_id == slot.id and lesson.is_recurring for lesson in lessons)

        assert sent_templates(enqueue) == [TemplateType.LESSON_BOOKING_RECURRING.value]
        assert enqueue.call_args.args[2]["occurrences"] == 12

    def test_wall_clock_preserved_across_spring_forward(self, booking_service, teacher, student):
        result = booking_service.book_lesson(
            teacher.id, student.id, utc(2026, 2, 26, 19), 60, BookingMode.RECURRING, recurring_weeks=4, now=NOW
        )
        starts = [lesson.start_utc for lesson in result.lessons]
        assert starts == [
            utc(2026, 2, 26, 19),
            utc(2026, 3, 5, 19),
            utc(2026, 3, 12, 18),
            utc(2026, 3, 19, 18),
        ]

    def test_conflicting_occurrences_are_skipped(self, db, booking_service, teacher, student):
        other = make_student(db, teacher, name="Johannes", email="johannes@example.com")
        booking_service.book_lesson(teacher.id, other.id, utc(2026, 1, 22, 19), 60, now=NOW)

        result = booking_service.book_lesson(
            teacher.id, student.id, THURSDAY_1400, 60, BookingMode.RECURRING, recurring_weeks=4, now=NOW
        )

        assert len(result.lessons) == 3
        assert [(s.local_date, s.reason) for s in result.skipped] == [(date(2026, 1, 22), SKIP_CONFLICT)]

    def test_duplicate_active_slot_rejected(self, db, booking_service, teacher, student):
        booking_service.book_lesson(
            teacher.id, student.id, THURSDAY_1400, 60, BookingMode.RECURRING, recurring_weeks=4, now=NOW
        )
        other = make_student(db, teacher, name="Johannes", email="johannes@example.com")
        later = TimezoneService.local_to_utc(date(2026, 3, 19), "14:00", teacher.timezone)

        with pytest.raises(DuplicateRecurringSlotException) as exc_info:
            booking_service.book_lesson(
                teacher.id, other.id, later, 60, BookingMode.RECURRING, recurring_weeks=4, now=NOW
            )

        assert exc_info.value.code == "DUPLICATE_RECURRING_SLOT"
        assert exc_info.value.status_code == 409

    def test_cancelled_slot_frees_the_tuple(self, db, booking_service, teacher, student):
        first = booking_service.book_lesson(
            teacher.id, student.id, THURSDAY_1400, 60, BookingMode.RECURRING, recurring_weeks=2, now=NOW
        )
        booking_service.recurring_slot_service.cancel_recurring_slot(
            first.recurring_slot.id, teacher.id, cancel_future_lessons=True, now=NOW
        )

        again = booking_service.book_lesson(
            teacher.id, student.id, THURSDAY_1400, 60, BookingMode.RECURRING, recurring_weeks=2, now=NOW
        )
        assert again.recurring_slot.id != first.recurring_slot.id
        assert len(again.lessons) == 2


@pytest.mark.usefixtures("weekday_availability")
class TestCancellation:
    def test_cancel_future_lesson(self, booking_service, enqueue, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        enqueue.reset_mock()

        result = booking_service.cancel_lesson(lesson.id, teacher_id=teacher.id, reason="Sick", now=NOW)

        assert result.lesson.status == LessonStatus.CANCELLED.value
        assert result.lesson.cancelled_at == NOW
        assert "Cancelled: Sick" in result.lesson.notes
        recipients = [call.args[1] for call in enqueue.call_args_list]
        assert sorted(recipients) == sorted([student.email, teacher.email])

    def test_cancelled_time_can_be_rebooked(self, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        booking_service.cancel_lesson(lesson.id, teacher_id=teacher.id, now=NOW)

        again = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW)
        assert again.lesson.id != lesson.id

    def test_student_may_cancel_own_lesson(self, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        result = booking_service.cancel_lesson(lesson.id, student_id=student.id, now=NOW)
        assert result.lesson.status == LessonStatus.CANCELLED.value

    def test_cannot_cancel_started_lesson(self, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        with pytest.raises(ValidationException) as exc_info:
            booking_service.cancel_lesson(lesson.id, teacher_id=teacher.id, now=MONDAY_1000)
        assert exc_info.value.code == "CANCELLATION_WINDOW_CLOSED"

    def test_cannot_cancel_twice(self, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        booking_service.cancel_lesson(lesson.id, teacher_id=teacher.id, now=NOW)
        with pytest.raises(ValidationException) as exc_info:
            booking_service.cancel_lesson(lesson.id, teacher_id=teacher.id, now=NOW)
        assert exc_info.value.code == "LESSON_NOT_SCHEDULED"

    def test_other_teacher_forbidden(self, db, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        other = make_teacher(db, email="other@example.com")
        with pytest.raises(ForbiddenException) as exc_info:
            booking_service.cancel_lesson(lesson.id, teacher_id=other.id, now=NOW)
        assert exc_info.value.code == "NOT_LESSON_OWNER"

    def test_cancel_all_recurring(self, db, booking_service, teacher, student):
        booked = booking_service.book_lesson(
            teacher.id, student.id, THURSDAY_1400, 60, BookingMode.RECURRING, recurring_weeks=4, now=NOW
        )
        first, second, third, fourth = booked.lessons
        after_first = utc(2026, 1, 10)

        result = booking_service.cancel_lesson(
            second.id, teacher_id=teacher.id, cancel_all_recurring=True, now=after_first
        )

        assert result.recurring_slot_cancelled
        assert sorted(result.cancelled_lesson_ids) == sorted([second.id, third.id, fourth.id])
        assert booked.recurring_slot.status == RecurringSlotStatus.CANCELLED.value
        assert db.get(Lesson, first.id).status == LessonStatus.SCHEDULED.value


@pytest.mark.usefixtures("weekday_availability")
class TestLessonUpdates:
    def test_complete_and_annotate(self, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        after = MONDAY_1000 + timedelta(hours=1)

        updated = booking_service.update_lesson(
            lesson.id, teacher.id, notes="Scales in D minor", status=LessonStatus.COMPLETED, now=after
        )

        assert updated.status == LessonStatus.COMPLETED.value
        assert updated.completed_at == after
        assert updated.notes == "Scales in D minor"
        assert updated.start_utc == MONDAY_1000

    def test_completed_lesson_cannot_be_rescheduled(self, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        booking_service.update_lesson(lesson.id, teacher.id, status=LessonStatus.COMPLETED, now=NOW)

        with pytest.raises(ValidationException) as exc_info:
            booking_service.update_lesson(lesson.id, teacher.id, status=LessonStatus.SCHEDULED, now=NOW)
        assert exc_info.value.code == "INVALID_STATUS_TRANSITION"

    def test_cancel_through_update(self, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        updated = booking_service.update_lesson(lesson.id, teacher.id, status=LessonStatus.CANCELLED, now=NOW)
        assert updated.status == LessonStatus.CANCELLED.value

    def test_only_owner_may_edit(self, db, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        other = make_teacher(db, email="other@example.com")
        with pytest.raises(ForbiddenException):
            booking_service.update_lesson(lesson.id, other.id, notes="hi", now=NOW)

    def test_get_lesson_hides_other_teachers(self, db, booking_service, teacher, student):
        lesson = booking_service.book_lesson(teacher.id, student.id, MONDAY_1000, 30, now=NOW).lesson
        other = make_teacher(db, email="other@example.com")
        assert booking_service.get_lesson(lesson.id, teacher_id=teacher.id).id == lesson.id
        with pytest.raises(NotFoundException):
            booking_service.get_lesson(lesson.id, teacher_id=other.id)
