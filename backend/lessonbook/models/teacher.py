# backend/lessonbook/models/teacher.py
"""
Teacher, student and lesson-pricing models.

A teacher's ``timezone`` is required: all weekly availability and recurring
slots are interpreted in that zone.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now


class TeacherProfile(Base):
    __tablename__ = "teacher_profiles"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    students = relationship("StudentProfile", back_populates="teacher")
    lesson_settings = relationship(
        "LessonSettings", back_populates="teacher", uselist=False, lazy="joined"
    )

    def __repr__(self) -> str:
        return f"<TeacherProfile {self.id} tz={self.timezone}>"


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=True, index=True)
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    email_notifications = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    teacher = relationship("TeacherProfile", back_populates="students")

    def __repr__(self) -> str:
        return f"<StudentProfile {self.id} teacher={self.teacher_id}>"


class LessonSettings(Base):
    """Per-teacher pricing, in minor currency units (cents)."""

    __tablename__ = "lesson_settings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(
        String(26), ForeignKey("teacher_profiles.id"), nullable=False, unique=True, index=True
    )
    price_30_min = Column(Integer, nullable=False)
    price_60_min = Column(Integer, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)

    teacher = relationship("TeacherProfile", back_populates="lesson_settings")

    __table_args__ = (
        CheckConstraint("price_30_min >= 0", name="check_price_30_non_negative"),
        CheckConstraint("price_60_min >= 0", name="check_price_60_non_negative"),
    )

    def price_for_duration(self, duration_minutes: int) -> int:
        """30-minute (or shorter) lessons use the 30 tier; everything longer the 60 tier."""
        if duration_minutes <= 30:
            return int(self.price_30_min)
        return int(self.price_60_min)
