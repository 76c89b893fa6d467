# backend/tests/tasks/test_background_jobs.py
from contextlib import contextmanager
from unittest.mock import patch

import pytest

from lessonbook.models.job_log import BackgroundJobLog
from lessonbook.services.booking_service import BookingMode
from lessonbook.tasks.background_jobs import (
    cleanup_job_logs_task,
    generate_future_lessons_task,
    generate_monthly_invoices_task,
)
from tests.factories import utc


@pytest.fixture
def task_db(db):
    """Point the tasks at the test session and keep Celery out of the way."""

    @contextmanager
    def session():
        yield db
        db.commit()

    with patch("lessonbook.tasks.background_jobs.get_db_session", session), patch(
        "lessonbook.services.notification_service.enqueue_email_task"
    ) as enqueue_email:
        yield enqueue_email


@pytest.mark.usefixtures("weekday_availability")
class TestBatchTasks:
    def test_monthly_invoices(self, task_db, booking_service, teacher, student):
        # Thursday 2030-01-03 14:00 New York
        booking_service.book_lesson(
            teacher.id, student.id, utc(2030, 1, 3, 19), 30, BookingMode.RECURRING, recurring_weeks=5
        )

        summary = generate_monthly_invoices_task(target_month="2030-01")

        assert summary == {"invoicesCreated": 1, "errors": []}
        task_db.assert_called_once()
        assert task_db.call_args.args[0] == "INVOICE_CREATED"
        assert task_db.call_args.args[2]["total"] == 25000

    def test_future_lessons(self, db, task_db, booking_service, teacher, student):
        booking_service.book_lesson(
            teacher.id, student.id, utc(2030, 1, 3, 19), 60, BookingMode.RECURRING, recurring_weeks=1
        )

        summary = generate_future_lessons_task(weeks=2)

        assert summary["lessonsGenerated"] == 0
        assert summary["errors"] == []
        assert db.query(BackgroundJobLog).count() == 1


def test_cleanup(db, task_db):
    db.add(BackgroundJobLog(job_name="generate_future_lessons", executed_at=utc(2020, 1, 1), success=True))
    db.commit()

    assert cleanup_job_logs_task(retention_days=30) == 1
