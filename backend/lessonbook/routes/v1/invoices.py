# backend/lessonbook/routes/v1/invoices.py
"""
Invoice routes - API v1

Endpoints:
    GET   /                   → Teacher's invoices, optionally for one month
    POST  /                   → Manual invoice for a student or outside customer
    POST  /overdue-reminders  → Queue payment reminders for OVERDUE invoices
    GET   /{invoice_id}       → Invoice with items
    PATCH /{invoice_id}       → Status and payment metadata
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.params import Path

from ...api.dependencies import CurrentUser, get_invoice_service, require_teacher
from ...core.exceptions import DomainException, NotFoundException
from ...models.invoice import InvoiceStatus
from ...schemas.invoice import (
    CreateInvoiceRequest,
    InvoiceResponse,
    InvoiceUpdateRequest,
    OverdueReminderResponse,
    OverdueRemindersRequest,
    OverdueRemindersResponse,
)
from ...services.invoice_service import InvoiceItemInput, InvoiceService
from .common import ERROR_RESPONSES, ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["invoices-v1"])


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    current_user: CurrentUser = Depends(require_teacher),
    service: InvoiceService = Depends(get_invoice_service),
) -> List[InvoiceResponse]:
    invoices = await asyncio.to_thread(
        service.invoice_repository.list_for_teacher, current_user.teacher_profile_id, month
    )
    return [InvoiceResponse.model_validate(invoice) for invoice in invoices]


@router.post(
    "", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES
)
async def create_invoice(
    payload: CreateInvoiceRequest,
    current_user: CurrentUser = Depends(require_teacher),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    """Create and send an invoice outside the monthly run."""
    teacher_id = current_user.teacher_profile_id
    items = [
        InvoiceItemInput(description=item.description, rate=item.rate, quantity=item.quantity)
        for item in payload.items
    ]
    try:
        if payload.student_id:
            invoice = await asyncio.to_thread(
                service.generate_invoice,
                teacher_id,
                payload.student_id,
                payload.month,
                items,
                payload.due_date,
            )
        else:
            invoice = await asyncio.to_thread(
                service.create_custom_invoice,
                teacher_id,
                payload.customer_name,
                payload.customer_email,
                payload.month,
                items,
                payload.due_date,
            )
    except DomainException as exc:
        handle_domain_exception(exc)
    return InvoiceResponse.model_validate(invoice)


@router.post("/overdue-reminders", response_model=OverdueRemindersResponse)
async def send_overdue_reminders(
    payload: OverdueRemindersRequest,
    current_user: CurrentUser = Depends(require_teacher),
    service: InvoiceService = Depends(get_invoice_service),
) -> OverdueRemindersResponse:
    teacher_id = None if current_user.is_admin else current_user.teacher_profile_id
    results = await asyncio.to_thread(service.send_overdue_reminders, teacher_id, payload.invoice_ids)
    return OverdueRemindersResponse(
        sent=sum(1 for result in results if result.success),
        results=[
            OverdueReminderResponse(invoice_id=result.invoice_id, success=result.success, error=result.error)
            for result in results
        ],
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse, responses=ERROR_RESPONSES)
async def get_invoice(
    invoice_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(require_teacher),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    invoice = await asyncio.to_thread(service.invoice_repository.get_with_items, invoice_id)
    if invoice is None or invoice.teacher_id != current_user.teacher_profile_id:
        handle_domain_exception(NotFoundException("Invoice not found", details={"invoice_id": invoice_id}))
    return InvoiceResponse.model_validate(invoice)


@router.patch("/{invoice_id}", response_model=InvoiceResponse, responses=ERROR_RESPONSES)
async def update_invoice(
    payload: InvoiceUpdateRequest,
    invoice_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(require_teacher),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    """Record status changes and externally-settled payments."""
    try:
        invoice = await asyncio.to_thread(
            lambda: service.update_invoice(
                invoice_id,
                current_user.teacher_profile_id,
                status=InvoiceStatus(payload.status) if payload.status else None,
                payment_method=payload.payment_method,
                payment_notes=payload.payment_notes,
            )
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return InvoiceResponse.model_validate(invoice)
