"""Repository for background job run history."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.job_log import BackgroundJobLog
from .base_repository import BaseRepository


class JobLogRepository(BaseRepository[BackgroundJobLog]):
    def __init__(self, db: Session):
        super().__init__(db, BackgroundJobLog)

    def record(
        self,
        job_name: str,
        executed_at: datetime,
        success: bool,
        *,
        invoices_created: int = 0,
        lessons_generated: int = 0,
        teachers_processed: int = 0,
        errors: Optional[List[str]] = None,
    ) -> BackgroundJobLog:
        return self.create(
            job_name=job_name,
            executed_at=executed_at,
            success=success,
            invoices_created=invoices_created,
            lessons_generated=lessons_generated,
            teachers_processed=teachers_processed,
            errors=list(errors) if errors else None,
        )

    def get_recent(self, limit: int = 50, job_name: Optional[str] = None) -> List[BackgroundJobLog]:
        query = self.db.query(BackgroundJobLog)
        if job_name:
            query = query.filter(BackgroundJobLog.job_name == job_name)
        return self._execute_query(query.order_by(BackgroundJobLog.executed_at.desc()).limit(limit))

    def delete_older_than(self, cutoff: datetime) -> int:
        deleted = (
            self.db.query(BackgroundJobLog)
            .filter(BackgroundJobLog.executed_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return int(deleted)
