# backend/lessonbook/services/conflict_checker.py
"""
Conflict Checker Service for lessonbook.

Answers one question: does a teacher already have a SCHEDULED lesson whose
[start, end) range intersects a candidate range? Used twice per booking,
once as a fast pre-check and once inside the booking transaction.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import CONFLICTING_STATUSES, LessonRepository
from .base import BaseService
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonConflict:
    lesson_id: str
    start_utc: datetime
    end_utc: datetime
    student_id: str
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "start_utc": self.start_utc.isoformat(),
            "end_utc": self.end_utc.isoformat(),
            "student_id": self.student_id,
            "status": self.status,
        }


class ConflictChecker(BaseService):
    """Detects overlapping SCHEDULED lessons for a teacher."""

    def __init__(self, db: Session, repository: Optional[LessonRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_lesson_repository(db)

    @BaseService.measure_operation("find_conflicts")
    def find_conflicts(
        self,
        teacher_id: str,
        start_utc: datetime,
        duration_minutes: int,
        statuses: Iterable[str] = CONFLICTING_STATUSES,
        exclude_lesson_id: Optional[str] = None,
    ) -> List[LessonConflict]:
        """
        Lessons overlapping [start_utc, start_utc + duration).

        Args:
            teacher_id: Teacher whose calendar is checked
            start_utc: Candidate start (timezone-aware)
            duration_minutes: Candidate length
            statuses: Lesson statuses treated as occupying time
            exclude_lesson_id: Lesson to ignore (e.g. the one being edited)
        """
        start_utc = TimezoneService.ensure_utc(start_utc)
        end_utc = start_utc + timedelta(minutes=duration_minutes)
        lessons = self.repository.find_overlapping_lessons(
            teacher_id, start_utc, end_utc, statuses=statuses, exclude_lesson_id=exclude_lesson_id
        )
        conflicts = [
            LessonConflict(
                lesson_id=lesson.id,
                start_utc=lesson.start_utc,
                end_utc=lesson.end_utc,
                student_id=lesson.student_id,
                status=lesson.status,
            )
            for lesson in lessons
        ]
        if conflicts:
            self.logger.info(
                f"Found {len(conflicts)} lesson conflicts for teacher {teacher_id} "
                f"between {start_utc.isoformat()} and {end_utc.isoformat()}"
            )
        return conflicts

    def has_conflict(
        self,
        teacher_id: str,
        start_utc: datetime,
        duration_minutes: int,
        exclude_lesson_id: Optional[str] = None,
    ) -> bool:
        return bool(
            self.find_conflicts(
                teacher_id, start_utc, duration_minutes, exclude_lesson_id=exclude_lesson_id
            )
        )
