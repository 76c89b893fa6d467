"""
Celery Beat schedule for lessonbook.
"""

from typing import Any, Dict

from celery.schedules import crontab

from lessonbook.core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return {
        # Bills the current month; scheduled lessons are billable
        "generate-monthly-invoices": {
            "task": "invoices.generate_monthly",
            "schedule": crontab(day_of_month=1, hour=6, minute=0),
            "options": {"queue": settings.maintenance_queue},
        },
        "generate-future-lessons": {
            "task": "lessons.generate_future",
            "schedule": crontab(hour=3, minute=15),
            "options": {"queue": settings.maintenance_queue},
        },
        "cleanup-job-logs": {
            "task": "jobs.cleanup_logs",
            "schedule": crontab(day_of_week=0, hour=4, minute=0),
            "options": {"queue": settings.maintenance_queue},
        },
    }
