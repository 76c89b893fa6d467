# backend/lessonbook/services/background_job_service.py
"""
Job history, log retention and pre-flight health checks for the batch jobs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.job_log import BackgroundJobLog
from ..models.types import utc_now
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

CLEANUP_JOB = "cleanup_job_logs"


@dataclass
class SystemHealthReport:
    is_healthy: bool = True
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def add(self, issue: str, suggestion: str) -> None:
        self.issues.append(issue)
        self.suggestions.append(suggestion)
        self.is_healthy = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isHealthy": self.is_healthy,
            "issues": list(self.issues),
            "suggestions": list(self.suggestions),
        }


class BackgroundJobService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.job_log_repository = RepositoryFactory.create_job_log_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.slot_repository = RepositoryFactory.create_recurring_slot_repository(db)

    def get_job_history(self, limit: int = 10, job_name: Optional[str] = None) -> List[BackgroundJobLog]:
        return self.job_log_repository.get_recent(limit=limit, job_name=job_name)

    @BaseService.measure_operation("cleanup_old_logs")
    def cleanup_old_logs(
        self, retention_days: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        """Delete job log rows older than the retention period; returns the count removed."""
        now = now or utc_now()
        retention_days = retention_days or settings.job_log_retention_days
        cutoff = now - timedelta(days=retention_days)
        with self.transaction():
            deleted = self.job_log_repository.delete_older_than(cutoff)
        self.logger.info(f"Cleaned up {deleted} job logs older than {cutoff.isoformat()}")
        return deleted

    @BaseService.measure_operation("validate_system_health")
    def validate_system_health(self, now: Optional[datetime] = None) -> SystemHealthReport:
        """
        Flag conditions that make the monthly jobs skip work:
        teachers with ACTIVE slots but no pricing, and ACTIVE slots that
        have not been reviewed for ``stale_slot_months``.
        """
        now = now or utc_now()
        report = SystemHealthReport()

        missing_settings = self.teacher_repository.get_teachers_with_active_slots_missing_settings()
        if missing_settings:
            report.add(
                f"{len(missing_settings)} teachers have recurring slots but no lesson settings configured",
                "Teachers should configure their lesson pricing before the next invoice run",
            )

        # Months approximated as 30 days
        cutoff = now - timedelta(days=30 * settings.stale_slot_months)
        stale_slots = self.slot_repository.get_active_created_before(cutoff)
        if stale_slots:
            report.add(
                f"{len(stale_slots)} recurring slots are older than "
                f"{settings.stale_slot_months} months and may need review",
                "Review long-running recurring slots to ensure they're still active",
            )

        if not report.is_healthy:
            self.logger.info(f"System health check found {len(report.issues)} issues")
        return report
