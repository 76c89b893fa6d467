"""Weekly availability and blocked-time schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ._strict_base import StrictModel, StrictRequestModel

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class AvailabilityWindowInput(StrictRequestModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday")
    start_time: str = Field(..., pattern=HHMM)
    end_time: str = Field(..., pattern=HHMM)
    is_active: bool = True

    @model_validator(mode="after")
    def _start_before_end(self) -> "AvailabilityWindowInput":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class WeeklyAvailabilityRequest(StrictRequestModel):
    """Full replacement of a teacher's weekly windows."""

    windows: List[AvailabilityWindowInput] = Field(default_factory=list)


class AvailabilityWindowResponse(StrictModel):
    id: str
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool


class WeeklyAvailabilityResponse(StrictModel):
    teacher_id: str
    timezone: str
    windows: List[AvailabilityWindowResponse]


class BlockedTimeCreate(StrictRequestModel):
    start: datetime
    end: datetime
    reason: Optional[str] = Field(None, max_length=500)
    timezone: Optional[str] = Field(None, description="Zone the teacher entered the range in")

    @field_validator("start", "end")
    @classmethod
    def _has_offset(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("must include a UTC offset")
        return v


class BlockedTimeResponse(StrictModel):
    id: str
    teacher_id: str
    start: datetime = Field(..., validation_alias="start_utc")
    end: datetime = Field(..., validation_alias="end_utc")
    reason: Optional[str] = None
    timezone: str


class AvailableSlotResponse(StrictModel):
    start: datetime = Field(..., validation_alias="start_utc")
    end: datetime = Field(..., validation_alias="end_utc")
    duration: int
    price: int


class AvailableSlotsResponse(StrictModel):
    teacher_id: str
    duration: int
    slots: List[AvailableSlotResponse]
