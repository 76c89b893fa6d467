# backend/lessonbook/services/notification_service.py
"""
Notification dispatcher.

Turns committed domain events into email jobs on the Celery notifications
queue. Every public method is best-effort: failures are logged and reported
as ``False``, never raised to the booking or invoicing caller.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..events.lesson_events import InvoiceCreated, LessonBooked, LessonCancelled
from ..models.invoice import Invoice
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .template_service import TemplateType
from .timezone_service import DAY_NAMES, TimezoneService, python_weekday_to_day_of_week

logger = logging.getLogger(__name__)

EnqueueFn = Callable[[str, str, Dict[str, Any]], None]


def enqueue_email_task(template_type: str, to_email: str, variables: Dict[str, Any]) -> None:
    """Hand one email to the Celery worker."""
    from ..tasks.notification_tasks import send_email_notification

    send_email_notification.apply_async(
        args=(template_type, to_email, variables), queue=settings.notifications_queue
    )


class NotificationService(BaseService):
    def __init__(self, db: Session, enqueue: Optional[EnqueueFn] = None):
        super().__init__(db)
        self._enqueue = enqueue or enqueue_email_task
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.system_settings_repository = RepositoryFactory.create_system_settings_repository(db)

    def dispatch(self, template_type: str, to_email: str, variables: Dict[str, Any]) -> bool:
        try:
            self._enqueue(template_type, to_email, variables)
        except Exception as exc:
            prometheus_metrics.record_notification(template_type, "enqueue_failed")
            self.logger.error(
                f"Failed to enqueue {template_type} email to {to_email}: {exc}",
                extra={"template_type": template_type, "error_type": type(exc).__name__},
            )
            return False
        prometheus_metrics.record_notification(template_type, "enqueued")
        return True

    def _best_effort(self, kind: str, build: Callable[[], List[Tuple[str, str, Dict[str, Any]]]]) -> bool:
        try:
            messages = build()
        except Exception as exc:
            self.logger.error(f"Failed to prepare {kind} notification: {exc}", exc_info=True)
            return False
        results = [self.dispatch(*message) for message in messages]
        return all(results)

    @BaseService.measure_operation("notify_lesson_booked")
    def notify_lesson_booked(self, event: LessonBooked) -> bool:
        return self._best_effort("lesson_booked", lambda: self._lesson_booked_messages(event))

    @BaseService.measure_operation("notify_lesson_cancelled")
    def notify_lesson_cancelled(self, event: LessonCancelled) -> bool:
        return self._best_effort("lesson_cancelled", lambda: self._lesson_cancelled_messages(event))

    @BaseService.measure_operation("notify_invoice_created")
    def notify_invoice_created(self, event: InvoiceCreated) -> bool:
        return self._best_effort("invoice_created", lambda: self._invoice_created_messages(event))

    @BaseService.measure_operation("notify_invoice_overdue")
    def notify_invoice_overdue(self, invoice: Invoice) -> bool:
        """Payment reminder for an OVERDUE invoice; sent on request, not gated by system settings."""
        return self._best_effort("invoice_overdue", lambda: self._invoice_overdue_messages(invoice))

    def _lesson_booked_messages(self, event: LessonBooked) -> List[Tuple[str, str, Dict[str, Any]]]:
        if not self.system_settings_repository.get().enable_booking_confirmations:
            self.logger.debug("Booking confirmations disabled; skipping email")
            return []
        teacher = self.teacher_repository.get_by_id(event.teacher_id)
        student = self.teacher_repository.get_student(event.student_id)
        if teacher is None or student is None:
            return []
        if not student.email or not student.email_notifications:
            self.logger.debug(f"Student {student.id} has email notifications disabled")
            return []

        lesson_date, lesson_time = TimezoneService.format_for_display(event.start_utc, teacher.timezone)
        variables: Dict[str, Any] = {
            "student_name": student.name,
            "teacher_name": teacher.name,
            "lesson_date": lesson_date,
            "lesson_time": lesson_time,
            "duration": event.duration,
        }
        template_type = TemplateType.LESSON_BOOKING
        if event.is_recurring:
            local = TimezoneService.utc_to_local(event.start_utc, teacher.timezone)
            variables["lesson_day_of_week"] = DAY_NAMES[python_weekday_to_day_of_week(local.weekday())]
            variables["occurrences"] = event.occurrences
            template_type = TemplateType.LESSON_BOOKING_RECURRING
        return [(template_type.value, student.email, variables)]

    def _lesson_cancelled_messages(self, event: LessonCancelled) -> List[Tuple[str, str, Dict[str, Any]]]:
        teacher = self.teacher_repository.get_by_id(event.teacher_id)
        student = self.teacher_repository.get_student(event.student_id)
        if teacher is None or student is None:
            return []
        lesson_date, lesson_time = TimezoneService.format_for_display(event.start_utc, teacher.timezone)
        base = {
            "student_name": student.name,
            "teacher_name": teacher.name,
            "lesson_date": lesson_date,
            "lesson_time": lesson_time,
            "duration": event.duration,
            "reason": event.reason,
            "cancelled_count": max(1, len(event.cancelled_lesson_ids)),
        }
        messages = []
        if student.email and student.email_notifications:
            messages.append(
                (TemplateType.LESSON_CANCELLED.value, student.email, {**base, "recipient_name": student.name})
            )
        if teacher.email:
            messages.append(
                (TemplateType.LESSON_CANCELLED.value, teacher.email, {**base, "recipient_name": teacher.name})
            )
        return messages

    def _invoice_created_messages(self, event: InvoiceCreated) -> List[Tuple[str, str, Dict[str, Any]]]:
        if not self.system_settings_repository.get().enable_invoice_notifications:
            self.logger.debug("Invoice notifications disabled; skipping email")
            return []
        invoice = RepositoryFactory.create_invoice_repository(self.db).get_with_items(event.invoice_id)
        if invoice is None:
            return []
        recipient, name = self.invoice_recipient(invoice)
        if not recipient:
            self.logger.info(f"Invoice {invoice.invoice_number} has no recipient email")
            return []
        teacher = self.teacher_repository.get_by_id(invoice.teacher_id)
        variables = {
            "customer_name": name,
            "teacher_name": teacher.name if teacher else "",
            "invoice_number": invoice.invoice_number,
            "month": invoice.month,
            "total": invoice.total,
            "due_date": invoice.due_date.date().isoformat(),
            "items": [
                {
                    "description": item.description,
                    "quantity": item.quantity,
                    "rate": item.rate,
                    "amount": item.amount,
                }
                for item in invoice.items
            ],
        }
        return [(TemplateType.INVOICE_CREATED.value, recipient, variables)]

    def _invoice_overdue_messages(self, invoice: Invoice) -> List[Tuple[str, str, Dict[str, Any]]]:
        recipient, name = self.invoice_recipient(invoice)
        if not recipient:
            return []
        teacher = self.teacher_repository.get_by_id(invoice.teacher_id)
        timezone_str = TimezoneService.resolve_teacher_timezone(teacher.timezone if teacher else None)
        due_date, _ = TimezoneService.format_for_display(invoice.due_date, timezone_str)
        variables = {
            "customer_name": name,
            "teacher_name": teacher.name if teacher else "",
            "invoice_number": invoice.invoice_number,
            "total": invoice.total,
            "due_date": due_date,
        }
        return [(TemplateType.INVOICE_OVERDUE.value, recipient, variables)]

    def invoice_recipient(self, invoice: Invoice) -> Tuple[Optional[str], str]:
        if invoice.student_id:
            student = self.teacher_repository.get_student(invoice.student_id)
            if student is not None:
                return student.email, student.name
        return invoice.customer_email, invoice.customer_name or ""
