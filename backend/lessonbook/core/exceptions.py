# backend/lessonbook/core/exceptions.py
"""
Domain-specific exceptions for lessonbook.

These exceptions carry a stable ``code`` and structured ``details`` so the API
layer can turn them into a consistent ``{message, code, details}`` envelope.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class AvailabilityException(ValidationException):
    """Raised when a requested lesson falls outside a teacher's bookable time."""

    OUTSIDE_AVAILABILITY = "OUTSIDE_AVAILABILITY"
    BLOCKED_TIME = "BLOCKED_TIME"

    def __init__(self, reason: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=reason, details=details)

    @property
    def reason(self) -> str:
        return self.code


class PreconditionException(ValidationException):
    """Raised when a teacher account is not ready for the requested action."""

    def __init__(
        self,
        message: str,
        code: str = "PRECONDITION_FAILED",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, details=details)


class MissingLessonSettingsException(PreconditionException):
    """Raised when a teacher has no lesson pricing configured."""

    def __init__(self, teacher_id: str):
        super().__init__(
            message=(
                "Please complete your account before booking lessons. "
                "Lesson pricing has not been configured."
            ),
            code="MISSING_LESSON_SETTINGS",
            details={"teacher_id": teacher_id},
        )


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenException(DomainException):
    """Raised when the caller lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a lesson overlaps an existing scheduled lesson."""

    CONFLICT = "CONFLICT"
    RACE_LOST = "BOOKING_RACE_LOST"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        race_lost: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = (
                "This time slot was just booked by another lesson"
                if race_lost
                else "This time slot conflicts with an existing lesson"
            )
        super().__init__(
            message=message,
            code=self.RACE_LOST if race_lost else self.CONFLICT,
            details=details or {},
        )

    @property
    def race_lost(self) -> bool:
        return self.code == self.RACE_LOST


class DuplicateRecurringSlotException(ConflictException):
    """Raised when an identical ACTIVE recurring slot already exists."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="You already have a recurring slot at this time",
            code="DUPLICATE_RECURRING_SLOT",
            details=details or {},
        )


class AvailabilityOverlapException(ValidationException):
    """Raised when two weekly availability windows overlap on the same day."""

    def __init__(self, day_of_week: int, new_range: str, conflicting_range: str):
        super().__init__(
            message=(
                f"Overlapping availability on day {day_of_week}: "
                f"{new_range} conflicts with {conflicting_range}"
            ),
            code="AVAILABILITY_OVERLAP",
            details={
                "day_of_week": day_of_week,
                "new_window": new_range,
                "conflicting_window": conflicting_range,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures, or constraint violations.
    """
