# backend/lessonbook/repositories/teacher_repository.py
"""
Teacher/student/pricing data access.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.recurring_slot import RecurringSlot, RecurringSlotStatus
from ..models.teacher import LessonSettings, StudentProfile, TeacherProfile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TeacherRepository(BaseRepository[TeacherProfile]):
    def __init__(self, db: Session):
        super().__init__(db, TeacherProfile)

    def get_by_user_id(self, user_id: str) -> Optional[TeacherProfile]:
        return self.find_one_by(user_id=user_id)

    def get_student_for_teacher(self, teacher_id: str, student_id: str) -> Optional[StudentProfile]:
        """Return the student only if they belong to this teacher."""
        try:
            return (
                self.db.query(StudentProfile)
                .filter(StudentProfile.id == student_id, StudentProfile.teacher_id == teacher_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading student {student_id}: {str(e)}")
            raise RepositoryException(f"Failed to load student: {str(e)}")

    def get_student(self, student_id: str) -> Optional[StudentProfile]:
        return self.db.get(StudentProfile, student_id)

    def get_student_by_user_id(self, user_id: str) -> Optional[StudentProfile]:
        return self.db.query(StudentProfile).filter(StudentProfile.user_id == user_id).first()

    def get_lesson_settings(self, teacher_id: str) -> Optional[LessonSettings]:
        return self.db.query(LessonSettings).filter(LessonSettings.teacher_id == teacher_id).first()

    def get_teachers_with_active_slots_missing_settings(self) -> List[TeacherProfile]:
        """Teachers that would fail invoicing: ACTIVE slots but no pricing row."""
        try:
            active_teacher_ids = (
                select(RecurringSlot.teacher_id)
                .where(RecurringSlot.status == RecurringSlotStatus.ACTIVE.value)
                .distinct()
            )
            return (
                self.db.query(TeacherProfile)
                .outerjoin(LessonSettings, LessonSettings.teacher_id == TeacherProfile.id)
                .filter(TeacherProfile.id.in_(active_teacher_ids), LessonSettings.id.is_(None))
                .order_by(TeacherProfile.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking teachers without settings: {str(e)}")
            raise RepositoryException(f"Failed to check lesson settings: {str(e)}")
