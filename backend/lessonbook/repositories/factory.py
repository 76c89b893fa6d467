# backend/lessonbook/repositories/factory.py
"""
Repository factory.

Centralizes repository construction so services share one session and tests
can swap implementations in one place.
"""

from sqlalchemy.orm import Session

from .availability_repository import AvailabilityRepository, BlockedTimeRepository
from .invoice_repository import InvoiceRepository
from .job_log_repository import JobLogRepository
from .lesson_repository import LessonRepository
from .platform_config_repository import SystemSettingsRepository
from .recurring_slot_repository import RecurringSlotRepository
from .teacher_repository import TeacherRepository


class RepositoryFactory:
    """Factory for creating repository instances."""

    @staticmethod
    def create_teacher_repository(db: Session) -> TeacherRepository:
        return TeacherRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> AvailabilityRepository:
        return AvailabilityRepository(db)

    @staticmethod
    def create_blocked_time_repository(db: Session) -> BlockedTimeRepository:
        return BlockedTimeRepository(db)

    @staticmethod
    def create_lesson_repository(db: Session) -> LessonRepository:
        return LessonRepository(db)

    @staticmethod
    def create_recurring_slot_repository(db: Session) -> RecurringSlotRepository:
        return RecurringSlotRepository(db)

    @staticmethod
    def create_invoice_repository(db: Session) -> InvoiceRepository:
        return InvoiceRepository(db)

    @staticmethod
    def create_system_settings_repository(db: Session) -> SystemSettingsRepository:
        return SystemSettingsRepository(db)

    @staticmethod
    def create_job_log_repository(db: Session) -> JobLogRepository:
        return JobLogRepository(db)
