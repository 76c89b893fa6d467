# backend/lessonbook/services/availability_service.py
"""
Availability management: a teacher's weekly windows and blocked time.

Windows are teacher-local wall-clock ranges and are validated when they
are written, so booking never has to reconcile overlapping windows.
Blocked times are absolute UTC intervals.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.exceptions import (
    AvailabilityOverlapException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from ..models.availability import AvailabilityWindow, BlockedTime
from ..models.types import utc_now
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker
from .timezone_service import TimezoneService, parse_hhmm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowInput:
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool = True


class AvailabilityService(BaseService):
    def __init__(self, db: Session, conflict_checker: Optional[ConflictChecker] = None):
        super().__init__(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.blocked_time_repository = RepositoryFactory.create_blocked_time_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)

    @staticmethod
    def validate_windows(windows: Sequence[WindowInput]) -> None:
        """
        HH:MM format, start < end, day in 0-6, and no two windows on the same
        day with ``a.start < b.end and a.end > b.start``.
        """
        by_day: Dict[int, List[WindowInput]] = {}
        for window in windows:
            if not 0 <= window.day_of_week <= 6:
                raise ValidationException(
                    "day_of_week must be between 0 and 6",
                    code="INVALID_DAY_OF_WEEK",
                    details={"day_of_week": window.day_of_week},
                )
            parse_hhmm(window.start_time)
            parse_hhmm(window.end_time)
            if window.start_time >= window.end_time:
                raise ValidationException(
                    f"Window start {window.start_time} must be before end {window.end_time}",
                    code="INVALID_WINDOW",
                    details={"day_of_week": window.day_of_week},
                )
            by_day.setdefault(window.day_of_week, []).append(window)

        for day, day_windows in by_day.items():
            ordered = sorted(day_windows, key=lambda w: w.start_time)
            for previous, current in zip(ordered, ordered[1:]):
                if current.start_time < previous.end_time and current.end_time > previous.start_time:
                    raise AvailabilityOverlapException(
                        day,
                        f"{current.start_time}-{current.end_time}",
                        f"{previous.start_time}-{previous.end_time}",
                    )

    @BaseService.measure_operation("replace_weekly_availability")
    def replace_weekly_availability(
        self, teacher_id: str, windows: Sequence[WindowInput]
    ) -> List[AvailabilityWindow]:
        """Atomically swap the teacher's whole weekly schedule."""
        self._require_teacher(teacher_id)
        self.validate_windows(windows)
        with self.transaction():
            created = self.availability_repository.replace_windows(
                teacher_id,
                [
                    {
                        "day_of_week": window.day_of_week,
                        "start_time": window.start_time,
                        "end_time": window.end_time,
                        "is_active": window.is_active,
                    }
                    for window in windows
                ],
            )
        self.log_operation("replace_weekly_availability", teacher_id=teacher_id, windows=len(created))
        return created

    def list_availability(self, teacher_id: str) -> List[AvailabilityWindow]:
        return self.availability_repository.get_windows(teacher_id)

    @BaseService.measure_operation("create_blocked_time")
    def create_blocked_time(
        self,
        teacher_id: str,
        start_utc: datetime,
        end_utc: datetime,
        reason: Optional[str] = None,
        timezone_str: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BlockedTime:
        """
        Block an absolute interval. Rejected when it is empty, lies in the
        past, or covers a lesson that is still SCHEDULED.
        """
        now = now or utc_now()
        teacher = self._require_teacher(teacher_id)
        start_utc = TimezoneService.ensure_utc(start_utc)
        end_utc = TimezoneService.ensure_utc(end_utc)
        timezone_str = timezone_str or teacher.timezone
        TimezoneService.get_timezone(timezone_str)

        if end_utc <= start_utc:
            raise ValidationException(
                "Blocked time must end after it starts", code="INVALID_BLOCKED_TIME"
            )
        if end_utc <= now:
            raise ValidationException(
                "Blocked time cannot be entirely in the past", code="BLOCKED_TIME_IN_PAST"
            )

        duration_minutes = -(-int((end_utc - start_utc).total_seconds()) // 60)
        conflicts = self.conflict_checker.find_conflicts(teacher_id, start_utc, duration_minutes)
        if conflicts:
            raise ConflictException(
                "Blocked time overlaps scheduled lessons; cancel them first",
                code="BLOCKED_TIME_CONFLICT",
                details={"conflicts": [conflict.to_dict() for conflict in conflicts]},
            )

        with self.transaction():
            blocked = self.blocked_time_repository.create(
                teacher_id=teacher_id,
                start_utc=start_utc,
                end_utc=end_utc,
                reason=reason,
                timezone=timezone_str,
            )
        self.log_operation("create_blocked_time", teacher_id=teacher_id, blocked_time_id=blocked.id)
        return blocked

    @BaseService.measure_operation("delete_blocked_time")
    def delete_blocked_time(self, teacher_id: str, blocked_time_id: str) -> None:
        blocked = self.blocked_time_repository.get_by_id(blocked_time_id)
        if blocked is None or blocked.teacher_id != teacher_id:
            raise NotFoundException(
                "Blocked time not found", details={"blocked_time_id": blocked_time_id}
            )
        with self.transaction():
            self.blocked_time_repository.delete(blocked_time_id)

    def list_blocked_times(
        self,
        teacher_id: str,
        start_utc: Optional[datetime] = None,
        end_utc: Optional[datetime] = None,
    ) -> List[BlockedTime]:
        return self.blocked_time_repository.list_for_teacher(teacher_id, start_utc, end_utc)

    def _require_teacher(self, teacher_id: str):
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        return teacher
