# backend/lessonbook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Every request gets fresh service instances bound to its session; tests
swap these out through ``app.dependency_overrides``.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_resolver import AvailabilityResolver
from ...services.availability_service import AvailabilityService
from ...services.background_job_service import BackgroundJobService
from ...services.booking_service import BookingService
from ...services.invoice_service import InvoiceService
from ...services.notification_service import NotificationService
from ...services.recurring_slot_service import RecurringSlotService
from .database import get_db


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> BookingService:
    """
    Get booking service instance.

    Args:
        db: Database session
        notification_service: Queues post-commit emails

    Returns:
        BookingService instance
    """
    return BookingService(db, notification_service=notification_service)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_availability_resolver(db: Session = Depends(get_db)) -> AvailabilityResolver:
    return AvailabilityResolver(db)


def get_invoice_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> InvoiceService:
    return InvoiceService(db, notification_service=notification_service)


def get_recurring_slot_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> RecurringSlotService:
    return RecurringSlotService(db, notification_service=notification_service)


def get_background_job_service(db: Session = Depends(get_db)) -> BackgroundJobService:
    return BackgroundJobService(db)
