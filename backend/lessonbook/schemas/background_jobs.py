"""Admin background-job schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ._strict_base import StrictModel, StrictRequestModel


class GenerateInvoicesRequest(StrictRequestModel):
    month: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


class GenerateLessonsRequest(StrictRequestModel):
    weeks: Optional[int] = Field(None, ge=1, le=52)


class CleanupRequest(StrictRequestModel):
    retention_days: Optional[int] = Field(None, ge=1, le=3650)


class MonthlyInvoiceJobResponse(StrictModel):
    month: str
    invoices_created: int
    errors: List[str]


class LessonGenerationJobResponse(StrictModel):
    success: bool
    lessons_generated: int
    teachers_processed: int
    errors: List[str]


class JobLogResponse(StrictModel):
    id: str
    job_name: str
    executed_at: datetime
    success: bool
    invoices_created: int
    lessons_generated: int
    teachers_processed: int
    errors: Optional[List[str]] = None


class SystemHealthResponse(StrictModel):
    is_healthy: bool
    issues: List[str]
    suggestions: List[str]


class CleanupResponse(StrictModel):
    deleted: int
