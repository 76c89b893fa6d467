# backend/lessonbook/models/invoice.py
"""
Invoice models.

Amounts are integers in minor currency units. There is no tax or discount
layer, so ``total`` always mirrors ``subtotal``.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime, utc_now


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    VIEWED = "VIEWED"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    # Null when billed to a custom payer named by customer_name/customer_email
    student_id = Column(String(26), ForeignKey("student_profiles.id"), nullable=True)
    customer_name = Column(String(200), nullable=True)
    customer_email = Column(String(255), nullable=True)

    invoice_number = Column(String(32), nullable=False)
    month = Column(String(7), nullable=False)
    due_date = Column(UTCDateTime, nullable=False)
    subtotal = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=InvoiceStatus.PENDING.value)

    paid_at = Column(UTCDateTime, nullable=True)
    payment_method = Column(String(100), nullable=True)
    payment_notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utc_now)

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.lesson_date",
    )
    teacher = relationship("TeacherProfile")
    student = relationship("StudentProfile")

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'SENT', 'VIEWED', 'PAID', 'OVERDUE', 'CANCELLED')",
            name="ck_invoices_status",
        ),
        CheckConstraint("total = subtotal", name="check_invoice_total_mirrors_subtotal"),
        CheckConstraint(
            "student_id IS NOT NULL OR customer_name IS NOT NULL",
            name="check_invoice_has_payer",
        ),
        UniqueConstraint("teacher_id", "invoice_number", name="uq_invoices_teacher_number"),
        Index("idx_invoices_teacher_student_month", "teacher_id", "student_id", "month"),
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number}: total={self.total}, status={self.status}>"

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID.value

    def set_items(self, items: Iterable["InvoiceItem"]) -> None:
        """Attach items and recompute totals from them."""
        self.items = list(items)
        self.recalculate()

    def recalculate(self) -> None:
        self.subtotal = sum(int(item.amount) for item in self.items)
        self.total = self.subtotal

    def mark_paid(self, now: datetime, payment_method: Optional[str] = None) -> None:
        self.status = InvoiceStatus.PAID.value
        if self.paid_at is None:
            self.paid_at = now
        if payment_method:
            self.payment_method = payment_method


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    invoice_id = Column(
        String(26), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lesson_id = Column(String(26), ForeignKey("lessons.id"), nullable=True)
    description = Column(String(255), nullable=False)
    lesson_date = Column(Date, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    rate = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)

    invoice = relationship("Invoice", back_populates="items")
    lesson = relationship("Lesson")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_item_quantity_positive"),
        CheckConstraint("amount = quantity * rate", name="check_item_amount"),
    )

    def __init__(self, **kwargs) -> None:
        if "amount" not in kwargs:
            kwargs["amount"] = kwargs.get("quantity", 1) * kwargs["rate"]
        kwargs.setdefault("quantity", 1)
        super().__init__(**kwargs)


class InvoiceSequence(Base):
    """Per-(teacher, year) invoice counter; incremented under a row lock."""

    __tablename__ = "invoice_sequences"

    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), primary_key=True)
    year = Column(Integer, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
