# backend/lessonbook/models/lesson.py
"""
Lesson model for lessonbook.

A lesson is one concrete session at a UTC instant. ``start_utc``/``end_utc``
are both stored so overlap checks are plain range comparisons on any dialect.
Price is snapshotted at booking time and never recomputed.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class LessonStatus(str, Enum):
    """Lesson lifecycle statuses."""

    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    student_id = Column(String(26), ForeignKey("student_profiles.id"), nullable=False)

    start_utc = Column(UTCDateTime, nullable=False)
    end_utc = Column(UTCDateTime, nullable=False)
    duration = Column(Integer, nullable=False)
    timezone = Column(String(64), nullable=False)

    status = Column(String(20), nullable=False, default=LessonStatus.SCHEDULED.value, index=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_slot_id = Column(String(26), ForeignKey("recurring_slots.id"), nullable=True)
    price = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utc_now)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    teacher = relationship("TeacherProfile")
    student = relationship("StudentProfile")
    recurring_slot = relationship("RecurringSlot", back_populates="lessons")

    __table_args__ = (
        CheckConstraint(
            "status IN ('SCHEDULED', 'COMPLETED', 'CANCELLED')", name="ck_lessons_status"
        ),
        CheckConstraint("duration > 0", name="check_lesson_duration_positive"),
        CheckConstraint("end_utc > start_utc", name="check_lesson_time_order"),
        CheckConstraint("price >= 0", name="check_lesson_price_non_negative"),
        Index("idx_lessons_teacher_range", "teacher_id", "start_utc", "end_utc"),
        Index("idx_lessons_slot_start", "recurring_slot_id", "start_utc"),
        # Two SCHEDULED lessons can never share a start instant for one teacher.
        Index(
            "uq_lessons_teacher_start_scheduled",
            "teacher_id",
            "start_utc",
            unique=True,
            postgresql_where=text("status = 'SCHEDULED'"),
            sqlite_where=text("status = 'SCHEDULED'"),
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        if "end_utc" not in kwargs and "start_utc" in kwargs and "duration" in kwargs:
            kwargs["end_utc"] = kwargs["start_utc"] + timedelta(minutes=kwargs["duration"])
        super().__init__(**kwargs)
        if not self.status:
            self.status = LessonStatus.SCHEDULED.value

    def __repr__(self) -> str:
        return (
            f"<Lesson {self.id}: teacher={self.teacher_id}, student={self.student_id}, "
            f"start={self.start_utc}, duration={self.duration}, status={self.status}>"
        )

    @property
    def is_scheduled(self) -> bool:
        return self.status == LessonStatus.SCHEDULED.value

    def overlaps(self, start_utc: datetime, end_utc: datetime) -> bool:
        return self.start_utc < end_utc and self.end_utc > start_utc

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def cancel(self, now: datetime, reason: Optional[str] = None) -> None:
        """Cancel this lesson. Callers validate the transition first."""
        self.status = LessonStatus.CANCELLED.value
        self.cancelled_at = now
        if reason:
            self.append_note(f"Cancelled: {reason}")
        logger.info(f"Lesson {self.id} cancelled")

    def complete(self, now: datetime) -> None:
        self.status = LessonStatus.COMPLETED.value
        self.completed_at = now
        logger.info(f"Lesson {self.id} marked as completed")
