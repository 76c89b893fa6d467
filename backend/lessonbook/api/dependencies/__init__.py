"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import CurrentUser, UserRole, get_current_user, require_admin, require_teacher
from .database import get_db
from .services import (
    get_availability_resolver,
    get_availability_service,
    get_background_job_service,
    get_booking_service,
    get_invoice_service,
    get_notification_service,
    get_recurring_slot_service,
)

__all__ = [
    # Auth
    "CurrentUser",
    "UserRole",
    "get_current_user",
    "require_admin",
    "require_teacher",
    # Database
    "get_db",
    # Services
    "get_availability_resolver",
    "get_availability_service",
    "get_background_job_service",
    "get_booking_service",
    "get_invoice_service",
    "get_notification_service",
    "get_recurring_slot_service",
]
