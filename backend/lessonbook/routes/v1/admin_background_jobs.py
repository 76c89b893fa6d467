# backend/lessonbook/routes/v1/admin_background_jobs.py
"""
Admin background-job routes - API v1

Manual triggers for the scheduled jobs plus their run history. Triggers run
synchronously and return the same summary the scheduled run logs.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query

from ...api.dependencies import (
    CurrentUser,
    get_background_job_service,
    get_invoice_service,
    get_recurring_slot_service,
    require_admin,
)
from ...core.exceptions import DomainException
from ...schemas.background_jobs import (
    CleanupRequest,
    CleanupResponse,
    GenerateInvoicesRequest,
    GenerateLessonsRequest,
    JobLogResponse,
    LessonGenerationJobResponse,
    MonthlyInvoiceJobResponse,
    SystemHealthResponse,
)
from ...services.background_job_service import BackgroundJobService
from ...services.invoice_service import InvoiceService
from ...services.recurring_slot_service import RecurringSlotService
from .common import ERROR_RESPONSES, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-background-jobs-v1"])


@router.post("/generate-invoices", response_model=MonthlyInvoiceJobResponse, responses=ERROR_RESPONSES)
async def generate_invoices(
    payload: Optional[GenerateInvoicesRequest] = Body(None),
    current_user: CurrentUser = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
) -> MonthlyInvoiceJobResponse:
    """Run monthly invoicing for the current month (or ``month`` when given)."""
    month = payload.month if payload else None
    logger.info(f"Admin {current_user.user_id} triggered monthly invoice generation for {month or 'current month'}")
    try:
        result = await asyncio.to_thread(service.generate_monthly_invoices, month)
    except DomainException as exc:
        handle_domain_exception(exc)
    return MonthlyInvoiceJobResponse(
        month=result.month, invoices_created=result.invoices_created, errors=result.errors
    )


@router.post("/generate-lessons", response_model=LessonGenerationJobResponse)
async def generate_lessons(
    payload: Optional[GenerateLessonsRequest] = Body(None),
    current_user: CurrentUser = Depends(require_admin),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> LessonGenerationJobResponse:
    weeks = payload.weeks if payload else None
    logger.info(f"Admin {current_user.user_id} triggered future lesson generation")
    try:
        result = await asyncio.to_thread(service.generate_future_lessons, None, weeks)
    except DomainException as exc:
        handle_domain_exception(exc)
    return LessonGenerationJobResponse(
        success=result.success,
        lessons_generated=result.lessons_generated,
        teachers_processed=result.teachers_processed,
        errors=result.errors,
    )


@router.get("/history", response_model=List[JobLogResponse])
async def job_history(
    limit: int = Query(10, ge=1, le=100),
    job_name: Optional[str] = Query(None, alias="jobName"),
    current_user: CurrentUser = Depends(require_admin),
    service: BackgroundJobService = Depends(get_background_job_service),
) -> List[JobLogResponse]:
    logs = await asyncio.to_thread(service.get_job_history, limit, job_name)
    return [JobLogResponse.model_validate(log) for log in logs]


@router.get("/health", response_model=SystemHealthResponse)
async def system_health(
    current_user: CurrentUser = Depends(require_admin),
    service: BackgroundJobService = Depends(get_background_job_service),
) -> SystemHealthResponse:
    report = await asyncio.to_thread(service.validate_system_health)
    return SystemHealthResponse(
        is_healthy=report.is_healthy, issues=report.issues, suggestions=report.suggestions
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_logs(
    payload: Optional[CleanupRequest] = Body(None),
    current_user: CurrentUser = Depends(require_admin),
    service: BackgroundJobService = Depends(get_background_job_service),
) -> CleanupResponse:
    retention_days = payload.retention_days if payload else None
    deleted = await asyncio.to_thread(service.cleanup_old_logs, retention_days)
    return CleanupResponse(deleted=deleted)
