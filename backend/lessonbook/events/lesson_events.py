"""Lesson and invoice domain events."""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class LessonBooked:
    """Fired after a single or recurring booking commits."""

    lesson_id: str
    teacher_id: str
    student_id: str
    start_utc: datetime
    duration: int
    recurring_slot_id: Optional[str] = None
    occurrences: int = 1

    @property
    def is_recurring(self) -> bool:
        return self.recurring_slot_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LessonCancelled:
    """Fired after a lesson (and optionally its series) is cancelled."""

    lesson_id: str
    teacher_id: str
    student_id: str
    start_utc: datetime
    duration: int
    cancelled_at: datetime
    reason: Optional[str] = None
    cancelled_lesson_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InvoiceCreated:
    """Fired after an invoice and its items commit."""

    invoice_id: str
    teacher_id: str
    student_id: Optional[str]
    invoice_number: str
    total: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
