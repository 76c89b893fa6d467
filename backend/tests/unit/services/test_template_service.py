# backend/tests/unit/services/test_template_service.py
from jinja2.exceptions import UndefinedError
import pytest

from lessonbook.core.exceptions import ValidationException
from lessonbook.services.template_service import TemplateService, TemplateType, currency


@pytest.fixture
def templates():
    return TemplateService()


def test_currency_formats_minor_units():
    assert currency(36000) == "$360.00"
    assert currency(123456) == "$1,234.56"


def test_invoice_email(templates):
    rendered = templates.render(
        TemplateType.INVOICE_CREATED.value,
        {
            "customer_name": "Robert",
            "teacher_name": "Clara Wieck",
            "invoice_number": "INV-2026-001",
            "month": "2026-02",
            "total": 18000,
            "due_date": "2026-03-03",
            "items": [
                {"description": "Lesson - Feb 05, 2026", "quantity": 1, "rate": 9000, "amount": 9000},
                {"description": "Lesson - Feb 12, 2026", "quantity": 1, "rate": 9000, "amount": 9000},
            ],
        },
    )

    assert rendered.subject == "Invoice INV-2026-001 from Clara Wieck"
    assert "Lesson - Feb 12, 2026" in rendered.html
    assert "$180.00" in rendered.html


def test_overdue_reminder_email(templates):
    rendered = templates.render(
        TemplateType.INVOICE_OVERDUE.value,
        {
            "customer_name": "Robert",
            "teacher_name": "Clara Wieck",
            "invoice_number": "INV-2026-004",
            "total": 9000,
            "due_date": "January 31, 2026",
        },
    )

    assert rendered.subject == "Payment reminder: invoice INV-2026-004 is overdue"
    assert "was due on January 31, 2026" in rendered.html
    assert "$90.00" in rendered.html


def test_cancellation_email_mentions_series(templates):
    rendered = templates.render(
        TemplateType.LESSON_CANCELLED.value,
        {
            "recipient_name": "Robert",
            "student_name": "Robert",
            "teacher_name": "Clara Wieck",
            "lesson_date": "Thursday, January 8, 2026",
            "lesson_time": "2:00 PM",
            "duration": 60,
            "reason": None,
            "cancelled_count": 3,
        },
    )
    assert rendered.subject == "Lesson on Thursday, January 8, 2026 cancelled"
    assert "3 upcoming lessons in this weekly series were cancelled" in rendered.html


def test_missing_variable_is_an_error(templates):
    with pytest.raises(UndefinedError):
        templates.render(TemplateType.LESSON_BOOKING.value, {"teacher_name": "Clara Wieck"})


def test_unknown_template(templates):
    with pytest.raises(ValidationException) as exc_info:
        templates.render("BIRTHDAY", {})
    assert exc_info.value.code == "UNKNOWN_TEMPLATE"
