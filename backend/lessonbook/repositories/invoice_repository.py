# backend/lessonbook/repositories/invoice_repository.py
"""
Invoice repository, including the per-(teacher, year) number sequence.
"""

import logging
from typing import List, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, selectinload

from ..models.invoice import Invoice, InvoiceSequence
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class InvoiceRepository(BaseRepository[Invoice]):
    def __init__(self, db: Session):
        super().__init__(db, Invoice)

    def get_with_items(self, invoice_id: str) -> Optional[Invoice]:
        query = (
            self.db.query(Invoice).options(selectinload(Invoice.items)).filter(Invoice.id == invoice_id)
        )
        return self._execute_first(query)

    def exists_for_student_month(self, teacher_id: str, student_id: str, month: str) -> bool:
        query = self.db.query(Invoice.id).filter(
            Invoice.teacher_id == teacher_id,
            Invoice.student_id == student_id,
            Invoice.month == month,
        )
        return self._execute_first(query) is not None

    def list_for_teacher(self, teacher_id: str, month: Optional[str] = None) -> List[Invoice]:
        query = self.db.query(Invoice).filter(Invoice.teacher_id == teacher_id)
        if month:
            query = query.filter(Invoice.month == month)
        return self._execute_query(query.order_by(Invoice.invoice_number))

    def next_sequence_value(self, teacher_id: str, year: int, prefix: str) -> int:
        """
        Increment and return the teacher's invoice counter for ``year``.

        Runs inside the caller's transaction; on PostgreSQL the counter row is
        held with FOR UPDATE until commit so concurrent invoices serialize.
        """
        row = self._lock_sequence(teacher_id, year)
        if row is None:
            seed = self._max_existing_number(teacher_id, year, prefix)
            self._insert_sequence_if_missing(teacher_id, year, seed)
            row = self._lock_sequence(teacher_id, year)
        row.last_value = int(row.last_value) + 1
        self.db.flush()
        return int(row.last_value)

    def _insert_sequence_if_missing(self, teacher_id: str, year: int, seed: int) -> None:
        """INSERT .. ON CONFLICT DO NOTHING; a concurrent creator simply wins."""
        insert = pg_insert if self.dialect_name == "postgresql" else sqlite_insert
        stmt = (
            insert(InvoiceSequence)
            .values(teacher_id=teacher_id, year=year, last_value=seed)
            .on_conflict_do_nothing(index_elements=["teacher_id", "year"])
        )
        self.db.execute(stmt)

    def _lock_sequence(self, teacher_id: str, year: int) -> Optional[InvoiceSequence]:
        query = self.db.query(InvoiceSequence).filter(
            InvoiceSequence.teacher_id == teacher_id, InvoiceSequence.year == year
        )
        if self.dialect_name == "postgresql":
            query = query.with_for_update()
        return query.first()

    def _max_existing_number(self, teacher_id: str, year: int, prefix: str) -> int:
        """Highest sequence already issued for the year, for counters created late."""
        marker = f"{prefix}-{year}-"
        numbers = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.teacher_id == teacher_id, Invoice.invoice_number.like(f"{marker}%"))
            .all()
        )
        highest = 0
        for (number,) in numbers:
            suffix = number[len(marker):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest
