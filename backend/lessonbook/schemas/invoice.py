"""Invoice schemas."""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from ._strict_base import StrictModel, StrictRequestModel


class InvoiceItemResponse(StrictModel):
    id: str
    description: str
    lesson_id: Optional[str] = None
    lesson_date: Optional[date] = None
    quantity: int
    rate: int
    amount: int


class InvoiceResponse(StrictModel):
    id: str
    teacher_id: str
    student_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    invoice_number: str
    month: str
    due_date: datetime
    subtotal: int
    total: int
    status: str
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_notes: Optional[str] = None
    items: List[InvoiceItemResponse] = Field(default_factory=list)


class InvoiceUpdateRequest(StrictRequestModel):
    """Status and externally-settled payment metadata only."""

    status: Optional[Literal["PENDING", "SENT", "VIEWED", "PAID", "OVERDUE", "CANCELLED"]] = None
    payment_method: Optional[str] = Field(None, max_length=100)
    payment_notes: Optional[str] = Field(None, max_length=2000)


class InvoiceItemRequest(StrictRequestModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(1, ge=1)
    rate: int = Field(..., ge=0, description="Minor units per unit")


class CreateInvoiceRequest(StrictRequestModel):
    """
    Manual invoice. The payer is either one of the teacher's students
    (``studentId``) or an outside customer (``customerName`` and optionally
    ``customerEmail``), never both.
    """

    student_id: Optional[str] = Field(None, min_length=1)
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_email: Optional[str] = Field(None, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    due_date: Optional[datetime] = None
    items: List[InvoiceItemRequest] = Field(..., min_length=1)

    @field_validator("due_date")
    @classmethod
    def _due_date_has_offset(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            raise ValueError("due_date must include a UTC offset")
        return v

    @model_validator(mode="after")
    def _one_payer(self) -> "CreateInvoiceRequest":
        if bool(self.student_id) == bool(self.customer_name):
            raise ValueError("Provide either studentId or customerName")
        if self.student_id and self.customer_email:
            raise ValueError("customerEmail only applies to customer invoices")
        return self


class OverdueRemindersRequest(StrictRequestModel):
    invoice_ids: List[str] = Field(..., min_length=1, max_length=100)


class OverdueReminderResponse(StrictModel):
    invoice_id: str
    success: bool
    error: Optional[str] = None


class OverdueRemindersResponse(StrictModel):
    sent: int
    results: List[OverdueReminderResponse]
