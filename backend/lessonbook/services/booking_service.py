# backend/lessonbook/services/booking_service.py
"""
Booking Transaction Manager for lessonbook.

Booking flow:
1. Validate duration, student ownership and pricing settings
2. AvailabilityResolver (reject outside windows or inside blocked time)
3. ConflictChecker outside any transaction (fast CONFLICT)
4. Per-teacher booking lock
5. One transaction: re-check conflicts, create the lesson or the recurring
   slot plus its occurrences, and (single lessons only) the invoice
6. After commit: queue notifications

Two layers back up the in-transaction re-check: the lock serializes
bookings per teacher, and the partial unique indexes on lessons and
recurring slots reject whatever still slips through.
"""

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.booking_lock import teacher_booking_lock
from ..core.config import settings
from ..core.exceptions import (
    BookingConflictException,
    DuplicateRecurringSlotException,
    ForbiddenException,
    MissingLessonSettingsException,
    NotFoundException,
    ServiceException,
    ValidationException,
)
from ..events.lesson_events import LessonBooked, LessonCancelled
from ..models.invoice import Invoice
from ..models.lesson import Lesson, LessonStatus
from ..models.recurring_slot import RecurringSlot, RecurringSlotStatus
from ..models.teacher import LessonSettings, TeacherProfile
from ..models.types import utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .availability_resolver import AvailabilityResolver
from .base import BaseService
from .conflict_checker import ConflictChecker
from .invoice_service import InvoiceService
from .notification_service import NotificationService
from .recurring_slot_service import RecurringSlotService, SkippedOccurrence, generate_occurrences
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)

LockFactory = Callable[[str], AbstractContextManager]

MAX_RECURRING_WEEKS = 52

_RACE_LOST_CONSTRAINT = "uq_lessons_teacher_start_scheduled"
_DUPLICATE_SLOT_CONSTRAINT = "uq_recurring_slots_active_tuple"


class BookingMode(str, Enum):
    SINGLE = "single"
    RECURRING = "recurring"


@dataclass
class BookingResult:
    mode: BookingMode
    lesson: Lesson
    recurring_slot: Optional[RecurringSlot] = None
    lessons: List[Lesson] = field(default_factory=list)
    skipped: List[SkippedOccurrence] = field(default_factory=list)
    invoice: Optional[Invoice] = None


@dataclass
class CancellationResult:
    lesson: Lesson
    cancelled_lesson_ids: List[str] = field(default_factory=list)
    recurring_slot_cancelled: bool = False


class BookingService(BaseService):
    """
    Creates, cancels and edits lessons.

    Conflict and availability rejections are expected outcomes and are
    logged at info; they are raised as domain exceptions for the route
    layer to translate.
    """

    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        availability_resolver: Optional[AvailabilityResolver] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        lock_factory: Optional[LockFactory] = None,
    ):
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.availability_resolver = availability_resolver or AvailabilityResolver(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.recurring_slot_service = RecurringSlotService(
            db, notification_service=self.notification_service, conflict_checker=self.conflict_checker
        )
        self.invoice_service = InvoiceService(db, notification_service=self.notification_service)
        self.lock_factory = lock_factory or teacher_booking_lock
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.slot_repository = RepositoryFactory.create_recurring_slot_repository(db)

    @BaseService.measure_operation("book_lesson")
    def book_lesson(
        self,
        teacher_id: str,
        student_id: str,
        start_utc: datetime,
        duration: int,
        mode: BookingMode = BookingMode.SINGLE,
        recurring_weeks: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Book a single lesson or a weekly recurring slot for a teacher's student.

        Args:
            teacher_id: Teacher profile id
            student_id: Student profile id (must belong to the teacher)
            start_utc: Requested start, timezone-aware
            duration: Minutes, within the configured bounds
            mode: SINGLE or RECURRING
            recurring_weeks: Total occurrences for RECURRING, first included
            now: Clock override

        Raises:
            ValidationException: Bad duration or recurrence count
            NotFoundException: Unknown teacher or student not owned by the teacher
            MissingLessonSettingsException: Teacher has no pricing configured
            AvailabilityException: Outside availability or inside blocked time
            BookingConflictException: CONFLICT on the pre-check, BOOKING_RACE_LOST after it
            DuplicateRecurringSlotException: Identical ACTIVE slot exists
        """
        now = now or utc_now()
        mode = BookingMode(mode)
        start_utc = TimezoneService.ensure_utc(start_utc)
        self._validate_start_alignment(start_utc)
        self._validate_duration(duration)
        weeks = self._resolve_recurring_weeks(mode, recurring_weeks)

        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        if self.teacher_repository.get_student_for_teacher(teacher_id, student_id) is None:
            raise NotFoundException(
                "Student not found for this teacher",
                details={"teacher_id": teacher_id, "student_id": student_id},
            )
        timezone_str = teacher.timezone
        TimezoneService.get_timezone(timezone_str)

        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)
        if lesson_settings is None:
            raise MissingLessonSettingsException(teacher_id)

        decision = self.availability_resolver.resolve(teacher_id, timezone_str, start_utc, duration)
        if not decision.accepted:
            self.logger.info(f"Booking rejected for teacher {teacher_id}: {decision.reason}")
            prometheus_metrics.record_booking_rejection(decision.reason or "UNAVAILABLE")
            decision.raise_if_rejected()

        conflicts = self.conflict_checker.find_conflicts(teacher_id, start_utc, duration)
        if conflicts:
            prometheus_metrics.record_booking_rejection(BookingConflictException.CONFLICT)
            raise BookingConflictException(
                details={"conflicts": [conflict.to_dict() for conflict in conflicts]}
            )

        with self.lock_factory(teacher_id) as acquired:
            if not acquired:
                self.logger.info(f"Booking lock for teacher {teacher_id} is held by another request")
                prometheus_metrics.record_booking_rejection(BookingConflictException.RACE_LOST)
                raise BookingConflictException(race_lost=True, details={"teacher_id": teacher_id})
            try:
                if mode == BookingMode.RECURRING:
                    result = self._create_recurring(
                        teacher, student_id, start_utc, duration, weeks, lesson_settings, now
                    )
                else:
                    result = self._create_single(
                        teacher, student_id, start_utc, duration, lesson_settings, now
                    )
            except ServiceException as exc:
                translated = self._translate_integrity_error(exc)
                if translated is exc:
                    raise
                raise translated from exc

        self.log_operation(
            "book_lesson",
            teacher_id=teacher_id,
            student_id=student_id,
            lesson_id=result.lesson.id,
            mode=mode.value,
            lessons_created=len(result.lessons),
        )
        self._announce_booking(result)
        return result

    def _create_single(
        self,
        teacher: TeacherProfile,
        student_id: str,
        start_utc: datetime,
        duration: int,
        lesson_settings: LessonSettings,
        now: datetime,
    ) -> BookingResult:
        with self.transaction():
            self._recheck_conflicts(teacher.id, start_utc, duration)
            lesson = self.lesson_repository.create(
                teacher_id=teacher.id,
                student_id=student_id,
                start_utc=start_utc,
                duration=duration,
                timezone=teacher.timezone,
                status=LessonStatus.SCHEDULED.value,
                is_recurring=False,
                price=lesson_settings.price_for_duration(duration),
            )
            invoice = self.invoice_service.build_single_lesson_invoice(
                lesson, lesson_settings, teacher.timezone, now
            )
        return BookingResult(mode=BookingMode.SINGLE, lesson=lesson, lessons=[lesson], invoice=invoice)

    def _create_recurring(
        self,
        teacher: TeacherProfile,
        student_id: str,
        start_utc: datetime,
        duration: int,
        weeks: int,
        lesson_settings: LessonSettings,
        now: datetime,
    ) -> BookingResult:
        timezone_str = teacher.timezone
        day_of_week, start_time = TimezoneService.to_local_parts(start_utc, timezone_str)
        price = lesson_settings.price_for_duration(duration)

        with self.transaction():
            self._recheck_conflicts(teacher.id, start_utc, duration)
            duplicate = self.slot_repository.find_active_duplicate(
                teacher.id, day_of_week, start_time, duration
            )
            if duplicate is not None:
                self.logger.info(f"Duplicate recurring slot {duplicate.id} for teacher {teacher.id}")
                raise DuplicateRecurringSlotException(
                    details={
                        "recurring_slot_id": duplicate.id,
                        "day_of_week": day_of_week,
                        "start_time": start_time,
                        "duration": duration,
                    }
                )

            slot = self.slot_repository.create(
                teacher_id=teacher.id,
                student_id=student_id,
                day_of_week=day_of_week,
                start_time=start_time,
                duration=duration,
                per_lesson_price=price,
                status=RecurringSlotStatus.ACTIVE.value,
            )
            first_lesson = self.lesson_repository.create(
                teacher_id=teacher.id,
                student_id=student_id,
                start_utc=start_utc,
                duration=duration,
                timezone=timezone_str,
                status=LessonStatus.SCHEDULED.value,
                is_recurring=True,
                recurring_slot_id=slot.id,
                price=price,
            )
            # Following weeks begin strictly after the first lesson
            plan = generate_occurrences(
                day_of_week, start_time, timezone_str, start_utc + timedelta(minutes=1), weeks - 1
            )
            outcome = self.recurring_slot_service.materialize_occurrences(slot, timezone_str, plan)

        if outcome.skipped:
            self.logger.info(
                f"Recurring slot {slot.id} skipped {len(outcome.skipped)} occurrences: "
                f"{[skipped.to_dict() for skipped in outcome.skipped]}"
            )
        return BookingResult(
            mode=BookingMode.RECURRING,
            lesson=first_lesson,
            recurring_slot=slot,
            lessons=[first_lesson, *outcome.lessons],
            skipped=outcome.skipped,
        )

    def _recheck_conflicts(self, teacher_id: str, start_utc: datetime, duration: int) -> None:
        conflicts = self.conflict_checker.find_conflicts(teacher_id, start_utc, duration)
        if conflicts:
            self.logger.info(f"Booking race lost for teacher {teacher_id} at {start_utc.isoformat()}")
            prometheus_metrics.record_booking_rejection(BookingConflictException.RACE_LOST)
            raise BookingConflictException(
                race_lost=True,
                details={"conflicts": [conflict.to_dict() for conflict in conflicts]},
            )

    def _translate_integrity_error(self, exc: ServiceException) -> Exception:
        """Map a unique-index violation to the matching conflict; pass anything else through."""
        cause = exc.__cause__
        if not isinstance(cause, IntegrityError):
            return exc
        text = str(cause.orig)
        if _RACE_LOST_CONSTRAINT in text or "lessons.teacher_id, lessons.start_utc" in text:
            prometheus_metrics.record_booking_rejection(BookingConflictException.RACE_LOST)
            return BookingConflictException(race_lost=True)
        if _DUPLICATE_SLOT_CONSTRAINT in text or "recurring_slots.teacher_id" in text:
            return DuplicateRecurringSlotException()
        return exc

    def _announce_booking(self, result: BookingResult) -> None:
        lesson = result.lesson
        self.notification_service.notify_lesson_booked(
            LessonBooked(
                lesson_id=lesson.id,
                teacher_id=lesson.teacher_id,
                student_id=lesson.student_id,
                start_utc=lesson.start_utc,
                duration=lesson.duration,
                recurring_slot_id=result.recurring_slot.id if result.recurring_slot else None,
                occurrences=len(result.lessons),
            )
        )
        if result.invoice is not None:
            self.invoice_service.announce(result.invoice)

    @staticmethod
    def _validate_start_alignment(start_utc: datetime) -> None:
        # Recurring slots store HH:MM, so every start sits on a whole minute
        if start_utc.second or start_utc.microsecond:
            raise ValidationException(
                "Lesson start must be on a whole minute",
                code="UNALIGNED_START",
                details={"start": start_utc.isoformat()},
            )

    @staticmethod
    def _validate_duration(duration: int) -> None:
        low = settings.booking_min_duration_minutes
        high = settings.booking_max_duration_minutes
        if not isinstance(duration, int) or isinstance(duration, bool) or not low <= duration <= high:
            raise ValidationException(
                f"Duration must be between {low} and {high} minutes",
                code="INVALID_DURATION",
                details={"duration": duration},
            )

    @staticmethod
    def _resolve_recurring_weeks(mode: BookingMode, recurring_weeks: Optional[int]) -> int:
        if mode == BookingMode.SINGLE:
            return 1
        weeks = recurring_weeks or settings.recurring_occurrences
        if not 1 <= weeks <= MAX_RECURRING_WEEKS:
            raise ValidationException(
                f"Recurring bookings span 1 to {MAX_RECURRING_WEEKS} weeks",
                code="INVALID_RECURRING_WEEKS",
                details={"recurring_weeks": recurring_weeks},
            )
        return weeks

    # Lesson lifecycle

    def get_lesson(
        self, lesson_id: str, teacher_id: Optional[str] = None, student_id: Optional[str] = None
    ) -> Lesson:
        """Fetch a lesson visible to the given teacher or student."""
        lesson = self.lesson_repository.get_by_id(lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found", details={"lesson_id": lesson_id})
        if teacher_id is not None and lesson.teacher_id != teacher_id:
            raise NotFoundException("Lesson not found", details={"lesson_id": lesson_id})
        if student_id is not None and lesson.student_id != student_id:
            raise NotFoundException("Lesson not found", details={"lesson_id": lesson_id})
        return lesson

    @BaseService.measure_operation("cancel_lesson")
    def cancel_lesson(
        self,
        lesson_id: str,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        reason: Optional[str] = None,
        cancel_all_recurring: bool = False,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        """
        SCHEDULED -> CANCELLED, allowed only before the lesson starts
        (minus the configured cancellation buffer).

        With ``cancel_all_recurring`` the owning slot is cancelled as well,
        together with every later SCHEDULED lesson it produced.
        """
        now = now or utc_now()
        lesson = self.lesson_repository.get_for_update(lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found", details={"lesson_id": lesson_id})
        if teacher_id is not None and lesson.teacher_id != teacher_id:
            raise ForbiddenException("You can only cancel your own lessons", code="NOT_LESSON_OWNER")
        if student_id is not None and lesson.student_id != student_id:
            raise ForbiddenException("You can only cancel your own lessons", code="NOT_LESSON_OWNER")

        self._ensure_cancellable(lesson, now)

        result = CancellationResult(lesson=lesson)
        with self.transaction():
            lesson.cancel(now, reason)
            result.cancelled_lesson_ids.append(lesson.id)
            if cancel_all_recurring and lesson.recurring_slot_id:
                slot = self.slot_repository.get_by_id(lesson.recurring_slot_id)
                if slot is not None and slot.is_active:
                    slot.cancel(now)
                    result.recurring_slot_cancelled = True
                for future in self.lesson_repository.get_future_scheduled_for_slot(
                    lesson.recurring_slot_id, now
                ):
                    if future.id == lesson.id:
                        continue
                    future.cancel(now, reason)
                    result.cancelled_lesson_ids.append(future.id)
            self.db.flush()

        self.log_operation(
            "cancel_lesson",
            lesson_id=lesson.id,
            cancelled=len(result.cancelled_lesson_ids),
            slot_cancelled=result.recurring_slot_cancelled,
        )
        self.notification_service.notify_lesson_cancelled(
            LessonCancelled(
                lesson_id=lesson.id,
                teacher_id=lesson.teacher_id,
                student_id=lesson.student_id,
                start_utc=lesson.start_utc,
                duration=lesson.duration,
                cancelled_at=now,
                reason=reason,
                cancelled_lesson_ids=list(result.cancelled_lesson_ids),
            )
        )
        return result

    @staticmethod
    def _ensure_cancellable(lesson: Lesson, now: datetime) -> None:
        if not lesson.is_scheduled:
            raise ValidationException(
                f"Only scheduled lessons can be cancelled (status is {lesson.status})",
                code="LESSON_NOT_SCHEDULED",
                details={"lesson_id": lesson.id, "status": lesson.status},
            )
        cutoff = lesson.start_utc - timedelta(hours=settings.cancellation_buffer_hours)
        if now >= cutoff:
            raise ValidationException(
                "Lessons can only be cancelled before they start",
                code="CANCELLATION_WINDOW_CLOSED",
                details={"lesson_id": lesson.id, "start_utc": lesson.start_utc.isoformat()},
            )

    @BaseService.measure_operation("update_lesson")
    def update_lesson(
        self,
        lesson_id: str,
        teacher_id: str,
        notes: Optional[str] = None,
        status: Optional[LessonStatus] = None,
        now: Optional[datetime] = None,
    ) -> Lesson:
        """
        Teacher edits: notes and status only. The date, duration and price
        of a lesson never change here.
        """
        now = now or utc_now()
        lesson = self.lesson_repository.get_by_id(lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found", details={"lesson_id": lesson_id})
        if lesson.teacher_id != teacher_id:
            raise ForbiddenException("Only the lesson's teacher can edit it", code="NOT_LESSON_OWNER")

        new_status = LessonStatus(status) if status is not None else None
        if new_status == LessonStatus.CANCELLED and lesson.status != LessonStatus.CANCELLED.value:
            self.cancel_lesson(lesson_id, teacher_id=teacher_id, now=now)
            if notes is None:
                return lesson
            new_status = None

        with self.transaction():
            if new_status is not None and new_status.value != lesson.status:
                if new_status != LessonStatus.COMPLETED or not lesson.is_scheduled:
                    raise ValidationException(
                        f"Cannot change lesson status from {lesson.status} to {new_status.value}",
                        code="INVALID_STATUS_TRANSITION",
                        details={"lesson_id": lesson.id},
                    )
                lesson.complete(now)
            if notes is not None:
                lesson.notes = notes
            self.db.flush()

        self.log_operation("update_lesson", lesson_id=lesson.id, status=lesson.status)
        return lesson

