# backend/lessonbook/tasks/celery_app.py
"""
Celery application configuration for lessonbook.

Redis is the broker; the result backend is disabled because no caller waits
on task results.
"""

import logging
import os
from typing import Any, Dict

from celery import Celery, Task
from celery.signals import setup_logging

from lessonbook.core.config import settings

logger = logging.getLogger(__name__)


def create_celery_app() -> Celery:
    """Create and configure the Celery application."""
    broker_url = os.getenv("CELERY_BROKER_URL") or settings.redis_url
    if not any(broker_url.endswith(f"/{i}") for i in range(16)):
        broker_url = f"{broker_url}/0"

    celery_app = Celery("lessonbook", broker=broker_url)
    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "task_ignore_result": True,
            "timezone": "UTC",
            "enable_utc": True,
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 300,
            "task_time_limit": 600,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "task_default_retry_delay": 60,
            "worker_hijack_root_logger": False,
            "broker_transport_options": {"visibility_timeout": 3600},
        }
    )
    celery_app.conf.imports = (
        "lessonbook.tasks.notification_tasks",
        "lessonbook.tasks.background_jobs",
    )
    celery_app.conf.task_routes = {
        "notifications.*": {"queue": settings.notifications_queue},
        "invoices.*": {"queue": settings.maintenance_queue},
        "lessons.*": {"queue": settings.maintenance_queue},
        "jobs.*": {"queue": settings.maintenance_queue},
    }

    from lessonbook.tasks.beat_schedule import get_beat_schedule

    celery_app.conf.beat_schedule = get_beat_schedule()
    return celery_app


@setup_logging.connect
def config_loggers(*args: Any, **kwargs: Any) -> None:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()


class BaseTask(Task):
    """Base task that logs failures and retries."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.error(
            f"Task {self.name}[{task_id}] failed with exception: {exc}",
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries} due to: {exc}",
            extra={"task_id": task_id, "task_name": self.name, "retry_count": self.request.retries},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = BaseTask


@celery_app.task(name="lessonbook.health_check")
def health_check() -> Dict[str, str]:
    from datetime import datetime, timezone

    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
