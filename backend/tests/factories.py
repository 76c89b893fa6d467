# backend/tests/factories.py
"""Row builders shared by unit and route tests."""

from contextlib import nullcontext
from datetime import datetime, timezone
import os
from typing import Optional

from sqlalchemy.orm import Session

from lessonbook.models.availability import AvailabilityWindow, BlockedTime
from lessonbook.models.teacher import LessonSettings, StudentProfile, TeacherProfile

TEACHER_TZ = "America/New_York"


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def allow_lock(teacher_id: str):
    return nullcontext(True)


def deny_lock(teacher_id: str):
    return nullcontext(False)


def make_teacher(
    db: Session,
    timezone_str: str = TEACHER_TZ,
    *,
    name: str = "Clara Wieck",
    email: str = "clara@example.com",
    user_id: Optional[str] = None,
    price_30_min: Optional[int] = 5000,
    price_60_min: Optional[int] = 9000,
) -> TeacherProfile:
    teacher = TeacherProfile(
        user_id=user_id or f"user-{os.urandom(6).hex()}",
        name=name,
        email=email,
        timezone=timezone_str,
    )
    db.add(teacher)
    db.flush()
    if price_30_min is not None and price_60_min is not None:
        db.add(
            LessonSettings(teacher_id=teacher.id, price_30_min=price_30_min, price_60_min=price_60_min)
        )
    db.commit()
    return teacher


def make_student(
    db: Session,
    teacher: TeacherProfile,
    *,
    name: str = "Robert",
    email: Optional[str] = "robert@example.com",
    user_id: Optional[str] = None,
    email_notifications: bool = True,
) -> StudentProfile:
    student = StudentProfile(
        teacher_id=teacher.id,
        user_id=user_id,
        name=name,
        email=email,
        email_notifications=email_notifications,
    )
    db.add(student)
    db.commit()
    return student


def add_window(
    db: Session, teacher: TeacherProfile, day_of_week: int, start_time: str, end_time: str
) -> AvailabilityWindow:
    window = AvailabilityWindow(
        teacher_id=teacher.id, day_of_week=day_of_week, start_time=start_time, end_time=end_time
    )
    db.add(window)
    db.commit()
    return window


def add_blocked_time(
    db: Session, teacher: TeacherProfile, start_utc: datetime, end_utc: datetime
) -> BlockedTime:
    blocked = BlockedTime(
        teacher_id=teacher.id,
        start_utc=start_utc,
        end_utc=end_utc,
        reason="Vacation",
        timezone=teacher.timezone,
    )
    db.add(blocked)
    db.commit()
    return blocked
