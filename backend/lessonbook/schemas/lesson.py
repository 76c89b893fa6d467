# backend/lessonbook/schemas/lesson.py
"""
Lesson booking schemas.

Times travel as ISO-8601 instants with an explicit offset; naive values are
rejected at the boundary rather than guessed.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from ._strict_base import StrictModel, StrictRequestModel


def _require_offset(value: Optional[datetime], field_name: str) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        raise ValueError(f"{field_name} must include a UTC offset")
    return value


class BookLessonRequest(StrictRequestModel):
    """Teacher books a lesson for one of their students."""

    teacher_id: str = Field(..., min_length=1, description="Teacher profile id")
    student_id: str = Field(..., min_length=1, description="Student profile id")
    date: datetime = Field(..., description="Lesson start, ISO-8601 with offset")
    duration: int = Field(..., gt=0, description="Length in minutes")
    type: Literal["single", "recurring"] = Field("single", description="Booking mode")
    recurring_weeks: Optional[int] = Field(
        None, ge=1, le=52, description="Total weekly occurrences for recurring bookings"
    )

    @field_validator("date")
    @classmethod
    def _date_has_offset(cls, v: datetime) -> datetime:
        return _require_offset(v, "date")  # type: ignore[return-value]


class UpdateLessonRequest(StrictRequestModel):
    """Only notes and status may change; the schedule itself is fixed."""

    notes: Optional[str] = Field(None, max_length=5000)
    status: Optional[Literal["SCHEDULED", "COMPLETED", "CANCELLED"]] = None

    @field_validator("notes")
    @classmethod
    def clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class LessonResponse(StrictModel):
    id: str
    teacher_id: str
    student_id: str
    date: datetime = Field(..., validation_alias="start_utc")
    end: datetime = Field(..., validation_alias="end_utc")
    duration: int
    timezone: str
    status: str
    is_recurring: bool
    recurring_slot_id: Optional[str] = None
    price: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class RecurringSlotResponse(StrictModel):
    id: str
    teacher_id: str
    student_id: str
    day_of_week: int
    start_time: str
    duration: int
    per_lesson_price: int
    status: str
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class SkippedOccurrenceResponse(StrictModel):
    local_date: str
    reason: str
    start_utc: Optional[str] = None


class SingleBookingResponse(StrictModel):
    type: Literal["single"] = "single"
    lesson: LessonResponse
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None


class RecurringBookingResponse(StrictModel):
    type: Literal["recurring"] = "recurring"
    recurring_slot: RecurringSlotResponse
    first_lesson: LessonResponse
    lessons_created: int
    skipped_occurrences: List[SkippedOccurrenceResponse] = Field(default_factory=list)


class LessonCancellationResponse(StrictModel):
    lesson: LessonResponse
    cancelled_lesson_ids: List[str]
    recurring_slot_cancelled: bool = False


class RecurringSlotCancellationResponse(StrictModel):
    recurring_slot: RecurringSlotResponse
    cancelled_lesson_ids: List[str] = Field(default_factory=list)
