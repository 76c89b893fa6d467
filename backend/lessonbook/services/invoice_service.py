# backend/lessonbook/services/invoice_service.py
"""
Invoice Generator.

Creates invoices with sequential per-teacher/year numbers
(``INV-{year}-{seq:03d}``), keeps ``total == subtotal == sum(items.amount)``,
and runs the idempotent monthly batch over ACTIVE recurring slots.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    DomainException,
    MissingLessonSettingsException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..events.lesson_events import InvoiceCreated
from ..models.invoice import Invoice, InvoiceItem, InvoiceStatus
from ..models.lesson import Lesson
from ..models.recurring_slot import RecurringSlot
from ..models.teacher import LessonSettings, TeacherProfile
from ..models.types import utc_now
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationService
from .timezone_service import TimezoneService, parse_month

logger = logging.getLogger(__name__)

MONTHLY_INVOICE_JOB = "monthly_invoice_generation"


@dataclass(frozen=True)
class InvoiceItemInput:
    description: str
    rate: int
    quantity: int = 1
    lesson_id: Optional[str] = None
    lesson_date: Optional[date] = None

    @property
    def amount(self) -> int:
        return self.quantity * self.rate


@dataclass
class MonthlyInvoiceResult:
    month: str
    invoices_created: int = 0
    errors: List[str] = field(default_factory=list)
    invoice_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"invoicesCreated": self.invoices_created, "errors": list(self.errors)}


@dataclass(frozen=True)
class OverdueReminderResult:
    invoice_id: str
    success: bool
    error: Optional[str] = None


def lesson_item_description(lesson_start_local: datetime) -> str:
    return f"Lesson - {lesson_start_local.strftime('%b %d, %Y')}"


class InvoiceService(BaseService):
    def __init__(self, db: Session, notification_service: Optional[NotificationService] = None):
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.invoice_repository = RepositoryFactory.create_invoice_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.slot_repository = RepositoryFactory.create_recurring_slot_repository(db)
        self.system_settings_repository = RepositoryFactory.create_system_settings_repository(db)
        self.job_log_repository = RepositoryFactory.create_job_log_repository(db)

    # Numbering and due dates

    @staticmethod
    def format_invoice_number(year: int, sequence: int) -> str:
        return f"{settings.invoice_number_prefix}-{year}-{sequence:03d}"

    def next_invoice_number(self, teacher_id: str, year: int) -> str:
        sequence = self.invoice_repository.next_sequence_value(
            teacher_id, year, settings.invoice_number_prefix
        )
        return self.format_invoice_number(year, sequence)

    def default_due_date(self, now: datetime) -> datetime:
        due_days = self.system_settings_repository.get().default_invoice_due_days
        return now + timedelta(days=int(due_days))

    # Core creation

    def build_invoice(
        self,
        teacher_id: str,
        student_id: Optional[str],
        month: str,
        due_date: datetime,
        items: Sequence[InvoiceItemInput],
        *,
        now: datetime,
        customer_name: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Invoice:
        """
        Persist an invoice and its items inside the caller's transaction.

        Does not commit and does not notify.
        """
        parse_month(month)
        if not items:
            raise ValidationException("An invoice needs at least one item", code="EMPTY_INVOICE")
        if student_id is None and not customer_name:
            raise ValidationException(
                "Invoices without a student must name a customer", code="MISSING_CUSTOMER"
            )
        for item in items:
            if item.quantity <= 0 or item.rate < 0:
                raise ValidationException(
                    "Invoice items need a positive quantity and a non-negative rate",
                    code="INVALID_INVOICE_ITEM",
                    details={"description": item.description},
                )

        invoice = Invoice(
            teacher_id=teacher_id,
            student_id=student_id,
            customer_name=customer_name,
            customer_email=customer_email,
            invoice_number=self.next_invoice_number(teacher_id, now.year),
            month=month,
            due_date=due_date,
            status=InvoiceStatus.PENDING.value,
        )
        invoice.set_items(
            InvoiceItem(
                description=item.description,
                quantity=item.quantity,
                rate=item.rate,
                amount=item.amount,
                lesson_id=item.lesson_id,
                lesson_date=item.lesson_date,
            )
            for item in items
        )
        self.db.add(invoice)
        self.db.flush()
        self.logger.info(
            f"Created invoice {invoice.invoice_number} for teacher {teacher_id}: "
            f"{len(invoice.items)} items, total {invoice.total}"
        )
        return invoice

    @BaseService.measure_operation("generate_invoice")
    def generate_invoice(
        self,
        teacher_id: str,
        student_id: Optional[str],
        month: str,
        items: Sequence[InvoiceItemInput],
        due_date: Optional[datetime] = None,
        *,
        customer_name: Optional[str] = None,
        customer_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Create, commit and announce one invoice."""
        now = now or utc_now()
        if self.teacher_repository.get_by_id(teacher_id) is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        if student_id and self.teacher_repository.get_student_for_teacher(teacher_id, student_id) is None:
            raise NotFoundException("Student not found", details={"student_id": student_id})

        with self.transaction():
            invoice = self.build_invoice(
                teacher_id,
                student_id,
                month,
                due_date or self.default_due_date(now),
                items,
                now=now,
                customer_name=customer_name,
                customer_email=customer_email,
            )
        self.announce(invoice)
        return invoice

    def create_custom_invoice(
        self,
        teacher_id: str,
        customer_name: str,
        customer_email: Optional[str],
        month: str,
        items: Sequence[InvoiceItemInput],
        due_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Invoice a payer who is not a student in the system."""
        return self.generate_invoice(
            teacher_id,
            None,
            month,
            items,
            due_date,
            customer_name=customer_name,
            customer_email=customer_email,
            now=now,
        )

    def build_single_lesson_invoice(
        self, lesson: Lesson, lesson_settings: LessonSettings, timezone_str: str, now: datetime
    ) -> Invoice:
        """One-item invoice for a single booked lesson, inside the caller's transaction."""
        local_start = TimezoneService.utc_to_local(lesson.start_utc, timezone_str)
        item = InvoiceItemInput(
            description=lesson_item_description(local_start),
            rate=lesson_settings.price_for_duration(lesson.duration),
            lesson_id=lesson.id,
            lesson_date=local_start.date(),
        )
        return self.build_invoice(
            lesson.teacher_id,
            lesson.student_id,
            local_start.strftime("%Y-%m"),
            self.default_due_date(now),
            [item],
            now=now,
        )

    @BaseService.measure_operation("create_single_lesson_invoice")
    def create_single_lesson_invoice(self, lesson_id: str, now: Optional[datetime] = None) -> Invoice:
        now = now or utc_now()
        lesson = self.lesson_repository.get_by_id(lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found", details={"lesson_id": lesson_id})
        lesson_settings = self.teacher_repository.get_lesson_settings(lesson.teacher_id)
        if lesson_settings is None:
            raise MissingLessonSettingsException(lesson.teacher_id)
        with self.transaction():
            invoice = self.build_single_lesson_invoice(lesson, lesson_settings, lesson.timezone, now)
        self.announce(invoice)
        return invoice

    @BaseService.measure_operation("send_overdue_reminders")
    def send_overdue_reminders(
        self, teacher_id: Optional[str], invoice_ids: Sequence[str]
    ) -> List[OverdueReminderResult]:
        """
        Queue a payment reminder for each OVERDUE invoice.

        Each invoice is reported on its own; one failure does not stop the
        rest. ``teacher_id`` limits the batch to that teacher's invoices
        (``None`` for admins). Other teachers' invoices read as not found.
        """
        results: List[OverdueReminderResult] = []
        for invoice_id in invoice_ids:
            invoice = self.invoice_repository.get_with_items(invoice_id)
            if invoice is None or (teacher_id is not None and invoice.teacher_id != teacher_id):
                results.append(OverdueReminderResult(invoice_id, False, "Invoice not found"))
                continue
            if invoice.status != InvoiceStatus.OVERDUE.value:
                results.append(OverdueReminderResult(invoice_id, False, "Invoice is not overdue"))
                continue
            recipient, _ = self.notification_service.invoice_recipient(invoice)
            if not recipient:
                results.append(OverdueReminderResult(invoice_id, False, "Invoice has no recipient email"))
                continue
            if not self.notification_service.notify_invoice_overdue(invoice):
                results.append(OverdueReminderResult(invoice_id, False, "Failed to queue reminder"))
                continue
            results.append(OverdueReminderResult(invoice_id, True))

        sent = sum(1 for result in results if result.success)
        self.logger.info(f"Queued {sent} of {len(results)} overdue invoice reminders")
        return results

    def announce(self, invoice: Invoice) -> bool:
        """Queue the invoice email; call only after commit."""
        return self.notification_service.notify_invoice_created(
            InvoiceCreated(
                invoice_id=invoice.id,
                teacher_id=invoice.teacher_id,
                student_id=invoice.student_id,
                invoice_number=invoice.invoice_number,
                total=invoice.total,
            )
        )

    # Updates

    @BaseService.measure_operation("update_invoice")
    def update_invoice(
        self,
        invoice_id: str,
        teacher_id: str,
        *,
        status: Optional[InvoiceStatus] = None,
        payment_method: Optional[str] = None,
        payment_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """
        Change status and payment metadata. Items and amounts are never
        edited here, so a PAID invoice stays immutable apart from payment info.
        """
        now = now or utc_now()
        invoice = self.invoice_repository.get_with_items(invoice_id)
        if invoice is None or invoice.teacher_id != teacher_id:
            raise NotFoundException("Invoice not found", details={"invoice_id": invoice_id})

        with self.transaction():
            if status is not None:
                new_status = InvoiceStatus(status)
                if invoice.is_paid and new_status != InvoiceStatus.PAID:
                    raise ValidationException(
                        "A paid invoice cannot change status",
                        code="INVOICE_ALREADY_PAID",
                        details={"invoice_id": invoice_id},
                    )
                if new_status == InvoiceStatus.PAID:
                    invoice.mark_paid(now)
                else:
                    invoice.status = new_status.value
            if payment_method is not None:
                invoice.payment_method = payment_method
            if payment_notes is not None:
                invoice.payment_notes = payment_notes
            self.db.flush()
        self.log_operation("update_invoice", invoice_id=invoice_id, status=invoice.status)
        return invoice

    # Monthly batch

    @BaseService.measure_operation("generate_monthly_invoices")
    def generate_monthly_invoices(
        self, target_month: Optional[str] = None, now: Optional[datetime] = None
    ) -> MonthlyInvoiceResult:
        """
        Ensure one invoice per (teacher, student, month) for ACTIVE recurring slots.

        Re-running for the same month creates nothing new. Failures are
        isolated per (teacher, student) group and collected into ``errors``;
        every invoice created before a failure stays committed.
        """
        now = now or utc_now()
        month = target_month or now.strftime("%Y-%m")
        parse_month(month)
        result = MonthlyInvoiceResult(month=month)
        self.logger.info(f"Starting monthly invoice generation for {month}")

        for (teacher_id, student_id), slots in self._group_slots(self.slot_repository.get_active_slots()):
            slot_ids = ", ".join(slot.id for slot in slots)
            try:
                invoice = self._invoice_slot_group(teacher_id, student_id, slots, month, now)
            except (DomainException, RepositoryException) as exc:
                self.db.rollback()
                message = exc.message if isinstance(exc, DomainException) else str(exc)
                self.logger.warning(f"Monthly invoice failed for slot(s) {slot_ids}: {message}")
                result.errors.append(f"Slot {slot_ids}: {message}")
                continue
            if invoice is None:
                continue
            result.invoices_created += 1
            result.invoice_ids.append(invoice.id)
            if not self.announce(invoice):
                result.errors.append(f"Failed to send invoice email for {invoice.invoice_number}")

        self._record_job(MONTHLY_INVOICE_JOB, now, result)
        self.logger.info(
            f"Monthly invoice generation for {month} finished: "
            f"{result.invoices_created} created, {len(result.errors)} errors"
        )
        return result

    def _invoice_slot_group(
        self,
        teacher_id: str,
        student_id: str,
        slots: List[RecurringSlot],
        month: str,
        now: datetime,
    ) -> Optional[Invoice]:
        if self.invoice_repository.exists_for_student_month(teacher_id, student_id, month):
            self.logger.debug(f"Invoice already exists for {teacher_id}/{student_id} in {month}")
            return None

        teacher: TeacherProfile = slots[0].teacher
        month_start, month_end = TimezoneService.month_bounds_utc(month, teacher.timezone)
        lessons = self.lesson_repository.get_slot_lessons_between(
            [slot.id for slot in slots], month_start, month_end
        )
        if not lessons:
            self.logger.debug(f"No lessons for {teacher_id}/{student_id} in {month}")
            return None

        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)
        if lesson_settings is None:
            raise MissingLessonSettingsException(teacher_id)

        slot_durations = {slot.id: slot.duration for slot in slots}
        items = []
        for lesson in lessons:
            local_start = TimezoneService.utc_to_local(lesson.start_utc, teacher.timezone)
            duration = slot_durations.get(lesson.recurring_slot_id, lesson.duration)
            items.append(
                InvoiceItemInput(
                    description=lesson_item_description(local_start),
                    rate=lesson_settings.price_for_duration(duration),
                    lesson_id=lesson.id,
                    lesson_date=local_start.date(),
                )
            )

        with self.transaction():
            return self.build_invoice(
                teacher_id, student_id, month, self.default_due_date(now), items, now=now
            )

    @staticmethod
    def _group_slots(
        slots: Sequence[RecurringSlot],
    ) -> List[Tuple[Tuple[str, str], List[RecurringSlot]]]:
        groups: "OrderedDict[Tuple[str, str], List[RecurringSlot]]" = OrderedDict()
        for slot in slots:
            groups.setdefault((slot.teacher_id, slot.student_id), []).append(slot)
        return list(groups.items())

    def _record_job(self, job_name: str, now: datetime, result: MonthlyInvoiceResult) -> None:
        with self.transaction():
            self.job_log_repository.record(
                job_name,
                now,
                success=not result.errors,
                invoices_created=result.invoices_created,
                errors=result.errors,
            )
