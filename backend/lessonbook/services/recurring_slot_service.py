# backend/lessonbook/services/recurring_slot_service.py
"""
Recurring Slot Manager.

Owns the weekly-recurrence rule: every occurrence is recomputed from the
slot's teacher-local (day_of_week, start_time) for its own calendar date, so
the wall-clock time stays fixed across daylight-saving changes. An
occurrence whose local time does not exist (spring-forward gap) is skipped
and reported rather than shifted.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import DomainException, NotFoundException, RepositoryException, ValidationException
from ..events.lesson_events import LessonCancelled
from ..models.lesson import Lesson, LessonStatus
from ..models.recurring_slot import RecurringSlot
from ..models.types import utc_now
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker
from .notification_service import NotificationService
from .timezone_service import (
    NonexistentLocalTimeException,
    TimezoneService,
    parse_hhmm,
    python_weekday_to_day_of_week,
)

logger = logging.getLogger(__name__)

FUTURE_LESSONS_JOB = "generate_future_lessons"

SKIP_NONEXISTENT_LOCAL_TIME = "NONEXISTENT_LOCAL_TIME"
SKIP_CONFLICT = "CONFLICT"
SKIP_EXISTING = "EXISTING_LESSON"


@dataclass
class OccurrencePlan:
    """UTC starts for a run of weekly occurrences plus the local dates that had to be skipped."""

    starts: List[datetime] = field(default_factory=list)
    skipped_dates: List[date] = field(default_factory=list)

    def clip_to(self, horizon: datetime, start_time: str, timezone_str: str) -> None:
        """Drop starts and gap dates at or after ``horizon``; gap dates compare by local wall clock."""
        horizon_local = TimezoneService.utc_to_local(horizon, timezone_str).replace(tzinfo=None)
        slot_time = parse_hhmm(start_time)
        self.starts = [start for start in self.starts if start < horizon]
        self.skipped_dates = [
            local_date
            for local_date in self.skipped_dates
            if datetime.combine(local_date, slot_time) < horizon_local
        ]


@dataclass(frozen=True)
class SkippedOccurrence:
    local_date: date
    reason: str
    start_utc: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local_date": self.local_date.isoformat(),
            "reason": self.reason,
            "start_utc": self.start_utc.isoformat() if self.start_utc else None,
        }


@dataclass
class MaterializedOccurrences:
    lessons: List[Lesson] = field(default_factory=list)
    skipped: List[SkippedOccurrence] = field(default_factory=list)


@dataclass
class SlotCancellation:
    slot: RecurringSlot
    cancelled_lesson_ids: List[str] = field(default_factory=list)


@dataclass
class LessonGenerationResult:
    success: bool = False
    lessons_generated: int = 0
    teachers_processed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "lessonsGenerated": self.lessons_generated,
            "teachersProcessed": self.teachers_processed,
            "errors": list(self.errors),
        }


def generate_occurrences(
    day_of_week: int,
    start_time: str,
    timezone_str: str,
    from_instant: datetime,
    count: int,
) -> OccurrencePlan:
    """
    Plan ``count`` consecutive weekly occurrences starting at the first
    local (day_of_week, start_time) at or after ``from_instant``.

    Each week's UTC instant is computed from that week's local date, so
    offsets follow the zone's rules per occurrence. Gap weeks still use up
    one of the ``count`` weeks.
    """
    if count < 0:
        raise ValidationException("count must not be negative", code="INVALID_OCCURRENCE_COUNT")
    if not 0 <= day_of_week <= 6:
        raise ValidationException("day_of_week must be between 0 and 6", code="INVALID_DAY_OF_WEEK")

    slot_time = parse_hhmm(start_time)
    reference_local = TimezoneService.utc_to_local(from_instant, timezone_str)
    current_day = python_weekday_to_day_of_week(reference_local.weekday())
    first_date = reference_local.date() + timedelta(days=(day_of_week - current_day) % 7)
    if first_date == reference_local.date() and reference_local.time() > slot_time:
        first_date += timedelta(days=7)

    plan = OccurrencePlan()
    for week in range(count):
        local_date = first_date + timedelta(weeks=week)
        try:
            plan.starts.append(TimezoneService.local_to_utc(local_date, start_time, timezone_str))
        except NonexistentLocalTimeException:
            logger.info(
                f"Skipping {local_date.isoformat()} {start_time} in {timezone_str}: "
                "local time does not exist"
            )
            plan.skipped_dates.append(local_date)
    return plan


class RecurringSlotService(BaseService):
    """
    Recurring slot lifecycle and lesson materialization.
    """

    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        conflict_checker: Optional[ConflictChecker] = None,
    ):
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.slot_repository = RepositoryFactory.create_recurring_slot_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.job_log_repository = RepositoryFactory.create_job_log_repository(db)

    def generate_occurrences(
        self, slot: RecurringSlot, timezone_str: str, from_instant: datetime, count: int
    ) -> OccurrencePlan:
        return generate_occurrences(slot.day_of_week, slot.start_time, timezone_str, from_instant, count)

    def materialize_occurrences(
        self,
        slot: RecurringSlot,
        timezone_str: str,
        plan: OccurrencePlan,
        *,
        skip_existing_days: bool = False,
    ) -> MaterializedOccurrences:
        """
        Insert SCHEDULED lessons for ``plan`` inside the caller's transaction.

        Occurrences that would overlap a SCHEDULED lesson are skipped, which
        also makes a retried batch a no-op. With ``skip_existing_days`` any
        lesson already on the pair's local calendar day (cancelled ones
        included) suppresses that occurrence.
        """
        outcome = MaterializedOccurrences(
            skipped=[
                SkippedOccurrence(local_date=skipped, reason=SKIP_NONEXISTENT_LOCAL_TIME)
                for skipped in plan.skipped_dates
            ]
        )
        for start_utc in plan.starts:
            local_date = TimezoneService.utc_to_local(start_utc, timezone_str).date()
            if skip_existing_days:
                day_start, day_end = TimezoneService.local_day_bounds_utc(local_date, timezone_str)
                if self.lesson_repository.exists_for_student_between(
                    slot.teacher_id, slot.student_id, day_start, day_end, include_cancelled=True
                ):
                    outcome.skipped.append(SkippedOccurrence(local_date, SKIP_EXISTING, start_utc))
                    continue
            if self.conflict_checker.has_conflict(slot.teacher_id, start_utc, slot.duration):
                outcome.skipped.append(SkippedOccurrence(local_date, SKIP_CONFLICT, start_utc))
                continue
            lesson = self.lesson_repository.create(
                teacher_id=slot.teacher_id,
                student_id=slot.student_id,
                start_utc=start_utc,
                duration=slot.duration,
                timezone=timezone_str,
                status=LessonStatus.SCHEDULED.value,
                is_recurring=True,
                recurring_slot_id=slot.id,
                price=slot.per_lesson_price,
            )
            outcome.lessons.append(lesson)
        return outcome

    def get_slot(self, slot_id: str, teacher_id: Optional[str] = None) -> RecurringSlot:
        slot = self.slot_repository.get_by_id(slot_id)
        if slot is None or (teacher_id is not None and slot.teacher_id != teacher_id):
            raise NotFoundException("Recurring slot not found", details={"slot_id": slot_id})
        return slot

    @BaseService.measure_operation("cancel_recurring_slot")
    def cancel_recurring_slot(
        self,
        slot_id: str,
        teacher_id: str,
        cancel_future_lessons: bool = False,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SlotCancellation:
        """
        ACTIVE -> CANCELLED. Existing lessons are left alone unless
        ``cancel_future_lessons`` is set, in which case every SCHEDULED
        lesson of the slot after ``now`` is cancelled too.
        """
        now = now or utc_now()
        slot = self.get_slot(slot_id, teacher_id)
        if not slot.is_active:
            raise ValidationException(
                "Recurring slot is already cancelled",
                code="SLOT_NOT_ACTIVE",
                details={"slot_id": slot_id, "status": slot.status},
            )

        result = SlotCancellation(slot=slot)
        future_lessons: Sequence[Lesson] = []
        with self.transaction():
            slot.cancel(now)
            if cancel_future_lessons:
                future_lessons = self.lesson_repository.get_future_scheduled_for_slot(slot.id, now)
                for lesson in future_lessons:
                    lesson.cancel(now, reason)
                    result.cancelled_lesson_ids.append(lesson.id)
            self.db.flush()

        self.log_operation(
            "cancel_recurring_slot", slot_id=slot.id, cancelled_lessons=len(result.cancelled_lesson_ids)
        )
        if future_lessons:
            first = future_lessons[0]
            self.notification_service.notify_lesson_cancelled(
                LessonCancelled(
                    lesson_id=first.id,
                    teacher_id=slot.teacher_id,
                    student_id=slot.student_id,
                    start_utc=first.start_utc,
                    duration=first.duration,
                    cancelled_at=now,
                    reason=reason,
                    cancelled_lesson_ids=list(result.cancelled_lesson_ids),
                )
            )
        return result

    @BaseService.measure_operation("generate_future_lessons")
    def generate_future_lessons(
        self, now: Optional[datetime] = None, weeks: Optional[int] = None
    ) -> LessonGenerationResult:
        """
        Top up every ACTIVE slot with lessons for the next ``weeks`` weeks.

        Processed per teacher; one teacher's failure is recorded and the
        run moves on. Lessons committed for earlier teachers stay committed.
        """
        now = now or utc_now()
        weeks = weeks or settings.lesson_generation_weeks
        horizon = now + timedelta(weeks=weeks)
        result = LessonGenerationResult()

        slots_by_teacher: "OrderedDict[str, List[RecurringSlot]]" = OrderedDict()
        for slot in self.slot_repository.get_active_slots():
            slots_by_teacher.setdefault(slot.teacher_id, []).append(slot)
        self.logger.info(f"Generating lessons for {len(slots_by_teacher)} teachers with active slots")

        for teacher_id, slots in slots_by_teacher.items():
            try:
                created = self._generate_for_teacher(slots, now, horizon, weeks, result.errors)
            except (DomainException, RepositoryException) as exc:
                self.db.rollback()
                message = exc.message if isinstance(exc, DomainException) else str(exc)
                self.logger.warning(f"Lesson generation failed for teacher {teacher_id}: {message}")
                result.errors.append(f"Failed to generate lessons for teacher {teacher_id}: {message}")
                continue
            result.lessons_generated += created
            result.teachers_processed += 1
            if created:
                self.logger.info(f"Generated {created} lessons for teacher {teacher_id}")

        result.success = not result.errors
        with self.transaction():
            self.job_log_repository.record(
                FUTURE_LESSONS_JOB,
                now,
                success=result.success,
                lessons_generated=result.lessons_generated,
                teachers_processed=result.teachers_processed,
                errors=result.errors,
            )
        self.logger.info(
            f"Lesson generation finished: {result.lessons_generated} lessons for "
            f"{result.teachers_processed} teachers, {len(result.errors)} errors"
        )
        return result

    def _generate_for_teacher(
        self,
        slots: List[RecurringSlot],
        now: datetime,
        horizon: datetime,
        weeks: int,
        errors: List[str],
    ) -> int:
        timezone_str = slots[0].teacher.timezone
        created = 0
        with self.transaction():
            for slot in slots:
                # Never generate ahead of the lesson the slot was booked from
                first_start = self.lesson_repository.first_start_for_slot(slot.id)
                from_instant = max(now, first_start) if first_start else now
                plan = self.generate_occurrences(slot, timezone_str, from_instant, weeks + 1)
                plan.clip_to(horizon, slot.start_time, timezone_str)
                outcome = self.materialize_occurrences(slot, timezone_str, plan, skip_existing_days=True)
                created += len(outcome.lessons)
                for skipped in outcome.skipped:
                    if skipped.reason == SKIP_CONFLICT:
                        errors.append(
                            f"Slot {slot.id}: {skipped.local_date.isoformat()} conflicts with an existing lesson"
                        )
                    elif skipped.reason == SKIP_NONEXISTENT_LOCAL_TIME:
                        errors.append(
                            f"Slot {slot.id}: {slot.start_time} does not exist on "
                            f"{skipped.local_date.isoformat()} in {timezone_str}"
                        )
        return created
