# backend/lessonbook/tasks/notification_tasks.py
"""
Celery tasks for email notifications.

Tasks are enqueued only after the booking/invoice transaction has committed,
so a failure here never affects the stored booking or invoice.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from celery.app.task import Task
from celery.utils.log import get_task_logger

from lessonbook.core.exceptions import ServiceException
from lessonbook.monitoring.prometheus_metrics import prometheus_metrics
from lessonbook.services.email import EmailService
from lessonbook.services.template_service import TemplateService
from lessonbook.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


def deliver_notification(
    template_type: str,
    to_email: str,
    variables: Dict[str, Any],
    email_service: Optional[EmailService] = None,
    template_service: Optional[TemplateService] = None,
) -> Dict[str, Any]:
    """Render and send one notification."""
    rendered = (template_service or TemplateService()).render(template_type, variables)
    return (email_service or EmailService()).send_email(to_email, rendered.subject, rendered.html)


@celery_app.task(
    name="notifications.send_email",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    queue="notifications",
)
def send_email_notification(
    self: "Task[Any, Any]", template_type: str, to_email: str, variables: Dict[str, Any]
) -> Optional[str]:
    try:
        response = deliver_notification(template_type, to_email, variables)
    except ServiceException as exc:
        attempt_number = self.request.retries + 1
        if attempt_number > MAX_DELIVERY_ATTEMPTS:
            prometheus_metrics.record_notification(template_type, "failed")
            logger.error(
                "Giving up on %s email to %s after %s attempts: %s",
                template_type,
                to_email,
                attempt_number - 1,
                exc,
            )
            raise
        prometheus_metrics.record_notification(template_type, "retry")
        raise self.retry(exc=exc, countdown=_next_backoff(attempt_number))

    prometheus_metrics.record_notification(template_type, "sent")
    logger.info("Sent %s email to %s", template_type, to_email)
    return response.get("id") if response else None
