# backend/lessonbook/repositories/lesson_repository.py
"""
Lesson repository.

Conflict queries work on the stored UTC range (start_utc, end_utc) only;
no timezone logic lives here.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.lesson import Lesson, LessonStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

CONFLICTING_STATUSES: Sequence[str] = (LessonStatus.SCHEDULED.value,)
BILLABLE_STATUSES: Sequence[str] = (LessonStatus.SCHEDULED.value, LessonStatus.COMPLETED.value)


class LessonRepository(BaseRepository[Lesson]):
    def __init__(self, db: Session):
        super().__init__(db, Lesson)

    def get_for_update(self, lesson_id: str) -> Optional[Lesson]:
        """Load a lesson with a row lock (no-op on SQLite)."""
        query = self.db.query(Lesson).filter(Lesson.id == lesson_id)
        if self.dialect_name == "postgresql":
            query = query.with_for_update()
        return self._execute_first(query)

    def find_overlapping_lessons(
        self,
        teacher_id: str,
        start_utc: datetime,
        end_utc: datetime,
        statuses: Iterable[str] = CONFLICTING_STATUSES,
        exclude_lesson_id: Optional[str] = None,
    ) -> List[Lesson]:
        """
        Lessons for the teacher whose [start, end) intersects the candidate.

        Standard interval test: existing.start < candidate.end AND
        existing.end > candidate.start. Touching ranges do not overlap.
        """
        query = self.db.query(Lesson).filter(
            Lesson.teacher_id == teacher_id,
            Lesson.status.in_(list(statuses)),
            Lesson.start_utc < end_utc,
            Lesson.end_utc > start_utc,
        )
        if exclude_lesson_id:
            query = query.filter(Lesson.id != exclude_lesson_id)
        return self._execute_query(query.order_by(Lesson.start_utc))

    def exists_for_student_between(
        self,
        teacher_id: str,
        student_id: str,
        start_utc: datetime,
        end_utc: datetime,
        include_cancelled: bool = False,
    ) -> bool:
        """Any lesson for the pair starting inside [start_utc, end_utc)."""
        query = self.db.query(Lesson.id).filter(
            Lesson.teacher_id == teacher_id,
            Lesson.student_id == student_id,
            Lesson.start_utc >= start_utc,
            Lesson.start_utc < end_utc,
        )
        if not include_cancelled:
            query = query.filter(Lesson.status != LessonStatus.CANCELLED.value)
        return self._execute_first(query) is not None

    def get_slot_lessons_between(
        self,
        slot_ids: Sequence[str],
        start_utc: datetime,
        end_utc: datetime,
        statuses: Iterable[str] = BILLABLE_STATUSES,
    ) -> List[Lesson]:
        """Lessons of the given slots starting inside [start_utc, end_utc)."""
        if not slot_ids:
            return []
        query = self.db.query(Lesson).filter(
            Lesson.recurring_slot_id.in_(list(slot_ids)),
            Lesson.status.in_(list(statuses)),
            Lesson.start_utc >= start_utc,
            Lesson.start_utc < end_utc,
        )
        return self._execute_query(query.order_by(Lesson.start_utc))

    def first_start_for_slot(self, slot_id: str) -> Optional[datetime]:
        """Earliest lesson start the slot ever produced, cancelled ones included."""
        return self.db.query(func.min(Lesson.start_utc)).filter(Lesson.recurring_slot_id == slot_id).scalar()

    def get_future_scheduled_for_slot(self, slot_id: str, now: datetime) -> List[Lesson]:
        query = self.db.query(Lesson).filter(
            Lesson.recurring_slot_id == slot_id,
            Lesson.status == LessonStatus.SCHEDULED.value,
            Lesson.start_utc > now,
        )
        return self._execute_query(query.order_by(Lesson.start_utc))

    def get_scheduled_between(self, teacher_id: str, start_utc: datetime, end_utc: datetime) -> List[Lesson]:
        return self.find_overlapping_lessons(teacher_id, start_utc, end_utc)
