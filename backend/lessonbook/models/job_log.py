"""
Background job run history.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from lessonbook.database import Base

from .types import UTCDateTime, utc_now


class BackgroundJobLog(Base):
    """One row per execution of a scheduled or admin-triggered job."""

    __tablename__ = "background_job_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    job_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    executed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    invoices_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lessons_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    teachers_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<BackgroundJobLog({self.job_name} @ {self.executed_at}: success={self.success})>"
