# backend/lessonbook/models/__init__.py
"""
Database models for lessonbook.

Importing this package registers every table on ``Base.metadata``.
"""

from .availability import AvailabilityWindow, BlockedTime
from .invoice import Invoice, InvoiceItem, InvoiceSequence, InvoiceStatus
from .job_log import BackgroundJobLog
from .lesson import Lesson, LessonStatus
from .platform_config import SystemSettings
from .recurring_slot import RecurringSlot, RecurringSlotStatus
from .teacher import LessonSettings, StudentProfile, TeacherProfile

__all__ = [
    "AvailabilityWindow",
    "BackgroundJobLog",
    "BlockedTime",
    "Invoice",
    "InvoiceItem",
    "InvoiceSequence",
    "InvoiceStatus",
    "Lesson",
    "LessonSettings",
    "LessonStatus",
    "RecurringSlot",
    "RecurringSlotStatus",
    "StudentProfile",
    "SystemSettings",
    "TeacherProfile",
]
