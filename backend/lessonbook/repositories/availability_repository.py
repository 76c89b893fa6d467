# backend/lessonbook/repositories/availability_repository.py
"""
Availability data access: weekly windows and blocked-time exceptions.
"""

from datetime import datetime
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilityWindow, BlockedTime
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailabilityWindow]):
    def __init__(self, db: Session):
        super().__init__(db, AvailabilityWindow)

    def get_active_windows_for_day(self, teacher_id: str, day_of_week: int) -> List[AvailabilityWindow]:
        query = (
            self.db.query(AvailabilityWindow)
            .filter(
                AvailabilityWindow.teacher_id == teacher_id,
                AvailabilityWindow.day_of_week == day_of_week,
                AvailabilityWindow.is_active.is_(True),
            )
            .order_by(AvailabilityWindow.start_time)
        )
        return self._execute_query(query)

    def get_windows(self, teacher_id: str) -> List[AvailabilityWindow]:
        query = (
            self.db.query(AvailabilityWindow)
            .filter(AvailabilityWindow.teacher_id == teacher_id)
            .order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
        )
        return self._execute_query(query)

    def replace_windows(
        self, teacher_id: str, windows: Iterable[Dict[str, object]]
    ) -> List[AvailabilityWindow]:
        """Delete every window for the teacher and insert the given set."""
        try:
            self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.teacher_id == teacher_id
            ).delete(synchronize_session=False)
            created = [AvailabilityWindow(teacher_id=teacher_id, **data) for data in windows]
            self.db.add_all(created)
            self.db.flush()
            return created
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing availability for {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to replace availability: {str(e)}")


class BlockedTimeRepository(BaseRepository[BlockedTime]):
    def __init__(self, db: Session):
        super().__init__(db, BlockedTime)

    def find_overlapping(self, teacher_id: str, start_utc: datetime, end_utc: datetime) -> List[BlockedTime]:
        """Blocked intervals intersecting [start_utc, end_utc)."""
        query = self.db.query(BlockedTime).filter(
            BlockedTime.teacher_id == teacher_id,
            BlockedTime.start_utc < end_utc,
            BlockedTime.end_utc > start_utc,
        )
        return self._execute_query(query)

    def list_for_teacher(
        self,
        teacher_id: str,
        start_utc: Optional[datetime] = None,
        end_utc: Optional[datetime] = None,
    ) -> List[BlockedTime]:
        query = self.db.query(BlockedTime).filter(BlockedTime.teacher_id == teacher_id)
        if start_utc is not None:
            query = query.filter(BlockedTime.end_utc > start_utc)
        if end_utc is not None:
            query = query.filter(BlockedTime.start_utc < end_utc)
        return self._execute_query(query.order_by(BlockedTime.start_utc))
