# backend/lessonbook/repositories/recurring_slot_repository.py
"""
Recurring slot repository.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from ..models.recurring_slot import RecurringSlot, RecurringSlotStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class RecurringSlotRepository(BaseRepository[RecurringSlot]):
    def __init__(self, db: Session):
        super().__init__(db, RecurringSlot)

    def find_active_duplicate(
        self, teacher_id: str, day_of_week: int, start_time: str, duration: int
    ) -> Optional[RecurringSlot]:
        """The ACTIVE slot occupying an exact (teacher, day, time, duration) tuple."""
        query = self.db.query(RecurringSlot).filter(
            RecurringSlot.teacher_id == teacher_id,
            RecurringSlot.day_of_week == day_of_week,
            RecurringSlot.start_time == start_time,
            RecurringSlot.duration == duration,
            RecurringSlot.status == RecurringSlotStatus.ACTIVE.value,
        )
        return self._execute_first(query)

    def get_active_slots(self) -> List[RecurringSlot]:
        """Every ACTIVE slot, grouped by teacher then student for batch jobs."""
        query = (
            self.db.query(RecurringSlot)
            .options(joinedload(RecurringSlot.teacher))
            .filter(RecurringSlot.status == RecurringSlotStatus.ACTIVE.value)
            .order_by(RecurringSlot.teacher_id, RecurringSlot.student_id, RecurringSlot.id)
        )
        return self._execute_query(query)

    def get_active_for_student(self, teacher_id: str, student_id: str) -> List[RecurringSlot]:
        query = self.db.query(RecurringSlot).filter(
            RecurringSlot.teacher_id == teacher_id,
            RecurringSlot.student_id == student_id,
            RecurringSlot.status == RecurringSlotStatus.ACTIVE.value,
        )
        return self._execute_query(query)

    def get_active_created_before(self, cutoff: datetime) -> List[RecurringSlot]:
        query = self.db.query(RecurringSlot).filter(
            RecurringSlot.status == RecurringSlotStatus.ACTIVE.value,
            RecurringSlot.created_at < cutoff,
        )
        return self._execute_query(query.order_by(RecurringSlot.created_at))
