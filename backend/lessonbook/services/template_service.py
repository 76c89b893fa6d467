"""
Email template rendering with Jinja2.

``render(template_type, variables)`` returns the subject and HTML body for one
of the known notification types.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from ..core.config import settings
from ..core.exceptions import ValidationException

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "email"


class TemplateType(str, Enum):
    LESSON_BOOKING = "LESSON_BOOKING"
    LESSON_BOOKING_RECURRING = "LESSON_BOOKING_RECURRING"
    LESSON_CANCELLED = "LESSON_CANCELLED"
    INVOICE_CREATED = "INVOICE_CREATED"
    INVOICE_OVERDUE = "INVOICE_OVERDUE"


_TEMPLATES: Dict[TemplateType, tuple] = {
    TemplateType.LESSON_BOOKING: ("lesson_booking.html", "Lesson booked with {teacher_name}"),
    TemplateType.LESSON_BOOKING_RECURRING: (
        "lesson_booking_recurring.html",
        "Weekly lessons booked with {teacher_name}",
    ),
    TemplateType.LESSON_CANCELLED: ("lesson_cancelled.html", "Lesson on {lesson_date} cancelled"),
    TemplateType.INVOICE_CREATED: ("invoice_created.html", "Invoice {invoice_number} from {teacher_name}"),
    TemplateType.INVOICE_OVERDUE: (
        "invoice_overdue.html",
        "Payment reminder: invoice {invoice_number} is overdue",
    ),
}


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


def currency(value: Any) -> str:
    """Format minor units (cents) as dollars."""
    return f"${int(value) / 100:,.2f}"


class TemplateService:
    def __init__(self, template_dir: Optional[Path] = None):
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = currency
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_common_context(self) -> Dict[str, Any]:
        return {
            "brand_name": "Lessonbook",
            "current_year": datetime.now().year,
            "frontend_url": settings.frontend_url,
        }

    def render(self, template_type: str, variables: Mapping[str, Any]) -> RenderedEmail:
        try:
            kind = TemplateType(template_type)
        except ValueError:
            raise ValidationException(
                f"Unknown email template: {template_type}", code="UNKNOWN_TEMPLATE"
            )
        filename, subject_format = _TEMPLATES[kind]
        context = {**self.get_common_context(), **variables}
        html = self.env.get_template(filename).render(**context)
        return RenderedEmail(subject=subject_format.format(**context), html=html)
