# backend/lessonbook/models/availability.py
"""
Availability models for lessonbook.

Classes:
    AvailabilityWindow: Recurring weekly bookable range in teacher-local time
    BlockedTime: Absolute UTC interval during which a teacher is unavailable
"""

import logging

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, SmallInteger, String
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now

logger = logging.getLogger(__name__)


class AvailabilityWindow(Base):
    """
    Weekly availability window.

    ``day_of_week`` is 0-6 with 0 = Sunday. ``start_time``/``end_time`` are
    zero-padded "HH:MM" strings in the teacher's timezone, so lexical
    comparison matches chronological order.
    """

    __tablename__ = "availability_windows"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(
        String(26), ForeignKey("teacher_profiles.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week = Column(SmallInteger, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    teacher = relationship("TeacherProfile")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_window_day_of_week"),
        CheckConstraint("start_time < end_time", name="check_window_time_order"),
        Index("idx_availability_windows_teacher_day", "teacher_id", "day_of_week"),
    )

    def contains(self, hhmm: str) -> bool:
        """Half-open containment: start is bookable, end is not."""
        return self.start_time <= hhmm < self.end_time

    def __repr__(self) -> str:
        return f"<AvailabilityWindow day={self.day_of_week} {self.start_time}-{self.end_time}>"


class BlockedTime(Base):
    """Teacher vacation/unavailable interval, stored as absolute instants."""

    __tablename__ = "blocked_times"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(
        String(26), ForeignKey("teacher_profiles.id", ondelete="CASCADE"), nullable=False
    )
    start_utc = Column(UTCDateTime, nullable=False)
    end_utc = Column(UTCDateTime, nullable=False)
    reason = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("end_utc > start_utc", name="check_blocked_time_order"),
        Index("idx_blocked_times_teacher_range", "teacher_id", "start_utc", "end_utc"),
    )

    def __repr__(self) -> str:
        return f"<BlockedTime {self.start_utc} - {self.end_utc} ({self.reason or 'No reason'})>"
