# backend/lessonbook/services/availability_resolver.py
"""
Availability Resolver.

Decides whether a candidate lesson sits inside the teacher's published
weekly availability and clear of any blocked time.

Acceptance rules:
1. The local start (day, HH:MM) must satisfy ``window.start <= start < window.end``
   for an active window on that local day.
2. The local end must also stay inside that same window (end == window.end
   is allowed). A lesson may not spill past the window or across midnight.
3. The UTC range must not intersect any blocked time.

``get_available_slots`` is the read side of the same rules: it enumerates
the starts a student could still book in a date range.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AvailabilityException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..models.availability import AvailabilityWindow
from ..models.types import utc_now
from ..repositories.availability_repository import AvailabilityRepository, BlockedTimeRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import LessonRepository
from ..repositories.teacher_repository import TeacherRepository
from .base import BaseService
from .timezone_service import (
    DAY_NAMES,
    NonexistentLocalTimeException,
    TimezoneService,
    parse_hhmm,
    python_weekday_to_day_of_week,
)

logger = logging.getLogger(__name__)

SLOT_STEP_MINUTES = 30
MAX_SLOT_RANGE_DAYS = 31


@dataclass(frozen=True)
class OpenSlot:
    start_utc: datetime
    end_utc: datetime
    duration: int
    price: int


@dataclass(frozen=True)
class AvailabilityDecision:
    accepted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    day_of_week: Optional[int] = None
    local_time: Optional[str] = None
    window_id: Optional[str] = None

    def raise_if_rejected(self) -> None:
        if not self.accepted:
            raise AvailabilityException(
                self.reason or AvailabilityException.OUTSIDE_AVAILABILITY,
                self.message or "Requested time is not available",
                details={"day_of_week": self.day_of_week, "local_time": self.local_time},
            )


class AvailabilityResolver(BaseService):
    def __init__(
        self,
        db: Session,
        availability_repository: Optional[AvailabilityRepository] = None,
        blocked_time_repository: Optional[BlockedTimeRepository] = None,
        lesson_repository: Optional[LessonRepository] = None,
        teacher_repository: Optional[TeacherRepository] = None,
    ):
        super().__init__(db)
        self.availability_repository = (
            availability_repository or RepositoryFactory.create_availability_repository(db)
        )
        self.blocked_time_repository = (
            blocked_time_repository or RepositoryFactory.create_blocked_time_repository(db)
        )
        self.lesson_repository = lesson_repository or RepositoryFactory.create_lesson_repository(db)
        self.teacher_repository = teacher_repository or RepositoryFactory.create_teacher_repository(db)

    @BaseService.measure_operation("resolve_availability")
    def resolve(
        self, teacher_id: str, timezone_str: str, start_utc: datetime, duration_minutes: int
    ) -> AvailabilityDecision:
        start_utc = TimezoneService.ensure_utc(start_utc)
        end_utc = start_utc + timedelta(minutes=duration_minutes)
        day_of_week, local_start = TimezoneService.to_local_parts(start_utc, timezone_str)

        window = self._find_containing_window(teacher_id, day_of_week, local_start)
        if window is None:
            self.logger.debug(
                f"No availability for teacher {teacher_id} on day {day_of_week} at {local_start}"
            )
            return AvailabilityDecision(
                accepted=False,
                reason=AvailabilityException.OUTSIDE_AVAILABILITY,
                message=f"Teacher is not available on {DAY_NAMES[day_of_week]} at {local_start}",
                day_of_week=day_of_week,
                local_time=local_start,
            )

        if not self._end_fits_window(window, start_utc, end_utc, timezone_str):
            return AvailabilityDecision(
                accepted=False,
                reason=AvailabilityException.OUTSIDE_AVAILABILITY,
                message=(
                    f"A {duration_minutes}-minute lesson at {local_start} runs past the "
                    f"availability window ending at {window.end_time}"
                ),
                day_of_week=day_of_week,
                local_time=local_start,
                window_id=window.id,
            )

        blocked = self.blocked_time_repository.find_overlapping(teacher_id, start_utc, end_utc)
        if blocked:
            self.logger.debug(f"Requested time for teacher {teacher_id} hits blocked time {blocked[0].id}")
            return AvailabilityDecision(
                accepted=False,
                reason=AvailabilityException.BLOCKED_TIME,
                message="Teacher is unavailable during the requested time",
                day_of_week=day_of_week,
                local_time=local_start,
                window_id=window.id,
            )

        return AvailabilityDecision(
            accepted=True, day_of_week=day_of_week, local_time=local_start, window_id=window.id
        )

    def ensure_available(
        self, teacher_id: str, timezone_str: str, start_utc: datetime, duration_minutes: int
    ) -> AvailabilityDecision:
        decision = self.resolve(teacher_id, timezone_str, start_utc, duration_minutes)
        decision.raise_if_rejected()
        return decision

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self,
        teacher_id: str,
        start_utc: datetime,
        end_utc: datetime,
        duration_minutes: int,
        student_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[OpenSlot]:
        """
        Bookable lesson starts in [start_utc, end_utc).

        Candidates step every ``SLOT_STEP_MINUTES`` from the start of each
        active window on every teacher-local day the range touches, and must
        pass the same window rules as ``resolve``. Starts that fall in a DST
        gap, lie in the past, or intersect blocked time or a SCHEDULED lesson
        are dropped.

        Args:
            teacher_id: Teacher profile id
            start_utc: Range start, timezone-aware
            end_utc: Range end (exclusive), timezone-aware
            duration_minutes: Lesson length the slots must fit
            student_id: When given, the student must belong to the teacher
            now: Clock override

        Raises:
            ValidationException: Bad range or duration
            NotFoundException: Unknown teacher
            ForbiddenException: Student belongs to another teacher
        """
        now = TimezoneService.ensure_utc(now or utc_now())
        start_utc = TimezoneService.ensure_utc(start_utc)
        end_utc = TimezoneService.ensure_utc(end_utc)
        self._validate_slot_query(start_utc, end_utc, duration_minutes)

        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        if student_id is not None and self.teacher_repository.get_student_for_teacher(teacher_id, student_id) is None:
            raise ForbiddenException(
                "Not authorized to view this teacher's availability",
                code="NOT_TEACHERS_STUDENT",
                details={"teacher_id": teacher_id},
            )
        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)
        if lesson_settings is None:
            self.logger.info(f"Teacher {teacher_id} has no lesson settings; no bookable slots")
            return []

        timezone_str = teacher.timezone
        search_end = end_utc + timedelta(minutes=duration_minutes)
        busy = [
            (blocked.start_utc, blocked.end_utc)
            for blocked in self.blocked_time_repository.find_overlapping(teacher_id, start_utc, search_end)
        ]
        busy.extend(
            (lesson.start_utc, lesson.end_utc)
            for lesson in self.lesson_repository.find_overlapping_lessons(teacher_id, start_utc, search_end)
        )
        price = lesson_settings.price_for_duration(duration_minutes)

        slots: List[OpenSlot] = []
        local_day = TimezoneService.utc_to_local(start_utc, timezone_str).date()
        last_day = TimezoneService.utc_to_local(end_utc, timezone_str).date()
        while local_day <= last_day:
            day_of_week = python_weekday_to_day_of_week(local_day.weekday())
            for window in self.availability_repository.get_active_windows_for_day(teacher_id, day_of_week):
                for slot_start in self._window_starts(window, local_day, timezone_str):
                    slot_end = slot_start + timedelta(minutes=duration_minutes)
                    if not start_utc <= slot_start < end_utc or slot_start < now:
                        continue
                    if not self._end_fits_window(window, slot_start, slot_end, timezone_str):
                        continue
                    if any(busy_start < slot_end and busy_end > slot_start for busy_start, busy_end in busy):
                        continue
                    slots.append(OpenSlot(slot_start, slot_end, duration_minutes, price))
            local_day += timedelta(days=1)

        slots.sort(key=lambda slot: slot.start_utc)
        self.logger.debug(f"{len(slots)} open slots for teacher {teacher_id}")
        return slots

    @staticmethod
    def _validate_slot_query(start_utc: datetime, end_utc: datetime, duration_minutes: int) -> None:
        if end_utc <= start_utc:
            raise ValidationException(
                "Range end must be after its start",
                code="INVALID_RANGE",
                details={"start": start_utc.isoformat(), "end": end_utc.isoformat()},
            )
        if end_utc - start_utc > timedelta(days=MAX_SLOT_RANGE_DAYS):
            raise ValidationException(
                f"Range may span at most {MAX_SLOT_RANGE_DAYS} days",
                code="RANGE_TOO_LARGE",
                details={"max_days": MAX_SLOT_RANGE_DAYS},
            )
        low = settings.booking_min_duration_minutes
        high = settings.booking_max_duration_minutes
        if not low <= duration_minutes <= high:
            raise ValidationException(
                f"Duration must be between {low} and {high} minutes",
                code="INVALID_DURATION",
                details={"duration": duration_minutes},
            )

    @staticmethod
    def _window_starts(window: AvailabilityWindow, local_day: date, timezone_str: str) -> Iterator[datetime]:
        opens = parse_hhmm(window.start_time)
        closes = parse_hhmm(window.end_time)
        first_minute = opens.hour * 60 + opens.minute
        last_minute = closes.hour * 60 + closes.minute
        for minute in range(first_minute, last_minute, SLOT_STEP_MINUTES):
            hhmm = f"{minute // 60:02d}:{minute % 60:02d}"
            try:
                yield TimezoneService.local_to_utc(local_day, hhmm, timezone_str)
            except NonexistentLocalTimeException:
                continue

    def _find_containing_window(
        self, teacher_id: str, day_of_week: int, local_start: str
    ) -> Optional[AvailabilityWindow]:
        for window in self.availability_repository.get_active_windows_for_day(teacher_id, day_of_week):
            if window.contains(local_start):
                return window
        return None

    @staticmethod
    def _end_fits_window(
        window: AvailabilityWindow, start_utc: datetime, end_utc: datetime, timezone_str: str
    ) -> bool:
        local_start = TimezoneService.utc_to_local(start_utc, timezone_str)
        local_end = TimezoneService.utc_to_local(end_utc, timezone_str)
        if local_end.date() != local_start.date():
            # Ending exactly at midnight only fits a window that ends at 24:00, which HH:MM cannot express
            return False
        return local_end.strftime("%H:%M") <= window.end_time
