# backend/lessonbook/models/recurring_slot.py
"""
Recurring slot model.

A standing weekly agreement between a teacher and a student. The slot owns
its lessons (lesson.recurring_slot_id); cancelling a slot stops future
generation but does not touch lessons that already exist.
"""

from datetime import datetime
from enum import Enum
import logging

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, SmallInteger, String, text
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class RecurringSlotStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class RecurringSlot(Base):
    __tablename__ = "recurring_slots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    student_id = Column(String(26), ForeignKey("student_profiles.id"), nullable=False)

    # Teacher-local wall clock; 0 = Sunday
    day_of_week = Column(SmallInteger, nullable=False)
    start_time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False)
    per_lesson_price = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default=RecurringSlotStatus.ACTIVE.value)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    cancelled_at = Column(UTCDateTime, nullable=True)

    teacher = relationship("TeacherProfile")
    student = relationship("StudentProfile")
    lessons = relationship("Lesson", back_populates="recurring_slot", order_by="Lesson.start_utc")

    __table_args__ = (
        CheckConstraint("status IN ('ACTIVE', 'CANCELLED')", name="ck_recurring_slots_status"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_slot_day_of_week"),
        CheckConstraint("duration > 0", name="check_slot_duration_positive"),
        CheckConstraint("per_lesson_price >= 0", name="check_slot_price_non_negative"),
        Index(
            "uq_recurring_slots_active_tuple",
            "teacher_id",
            "day_of_week",
            "start_time",
            "duration",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<RecurringSlot {self.id}: teacher={self.teacher_id}, student={self.student_id}, "
            f"day={self.day_of_week} {self.start_time} {self.duration}m, status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        return self.status == RecurringSlotStatus.ACTIVE.value

    def cancel(self, now: datetime) -> None:
        self.status = RecurringSlotStatus.CANCELLED.value
        self.cancelled_at = now
        logger.info(f"Recurring slot {self.id} cancelled")
