# backend/lessonbook/tasks/background_jobs.py
"""
Scheduled batch jobs: monthly invoicing, future lesson generation and
job-log retention.

Each job commits its own progress as it goes; a crash part-way through
keeps everything processed before the crash.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from celery.utils.log import get_task_logger

from lessonbook.database import get_db_session
from lessonbook.services.background_job_service import BackgroundJobService
from lessonbook.services.invoice_service import InvoiceService
from lessonbook.services.recurring_slot_service import RecurringSlotService
from lessonbook.tasks.celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(name="invoices.generate_monthly", bind=True, max_retries=0)
def generate_monthly_invoices_task(self: Any, target_month: Optional[str] = None) -> Dict[str, Any]:
    """Invoice every ACTIVE recurring slot for ``target_month`` (default: current month)."""
    with get_db_session() as db:
        result = InvoiceService(db).generate_monthly_invoices(target_month=target_month)
    logger.info(
        "Monthly invoices for %s: %s created, %s errors",
        result.month,
        result.invoices_created,
        len(result.errors),
    )
    return result.to_dict()


@celery_app.task(name="lessons.generate_future", bind=True, max_retries=0)
def generate_future_lessons_task(self: Any, weeks: Optional[int] = None) -> Dict[str, Any]:
    with get_db_session() as db:
        result = RecurringSlotService(db).generate_future_lessons(weeks=weeks)
    logger.info(
        "Generated %s lessons for %s teachers (%s errors)",
        result.lessons_generated,
        result.teachers_processed,
        len(result.errors),
    )
    return result.to_dict()


@celery_app.task(name="jobs.cleanup_logs", ignore_result=True)
def cleanup_job_logs_task(retention_days: Optional[int] = None) -> int:
    with get_db_session() as db:
        deleted = BackgroundJobService(db).cleanup_old_logs(retention_days=retention_days)
    logger.info("Removed %s background job log rows", deleted)
    return deleted
