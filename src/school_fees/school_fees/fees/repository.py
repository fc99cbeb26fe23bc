from __future__ import annotations

from datetime import date
from typing import ContextManager, Optional, Protocol, Sequence

from ..core.enums import FeeType
from .model import FeePage, FeeQuery, FeeRecord


class LedgerSession(Protocol):
    """Reads and writes for one student's ledger inside a single locked transaction."""

    def outstanding(self) -> Sequence[FeeRecord]:
        """Unpaid/partial/overdue records, oldest due date first."""

        raise NotImplementedError

    def save(self, record: FeeRecord) -> FeeRecord:
        raise NotImplementedError


class FeeRepository(Protocol):
    def get_by_id(self, fee_id: int) -> Optional[FeeRecord]:
        raise NotImplementedError

    def find_for_period(self, *, student_id: int, fee_type: FeeType, period_due_date: date) -> Optional[FeeRecord]:
        raise NotImplementedError

    def create(self, record: FeeRecord) -> FeeRecord:
        raise NotImplementedError

    def create_if_absent(self, record: FeeRecord) -> bool:
        """Insert unless (student, fee type, period) already exists. Returns True if inserted."""

        raise NotImplementedError

    def update(self, record: FeeRecord) -> FeeRecord:
        """Persist changes; raises ConcurrencyError when `record.version` is stale."""

        raise NotImplementedError

    def delete(self, fee_id: int) -> bool:
        raise NotImplementedError

    def search(self, query: FeeQuery) -> FeePage:
        raise NotImplementedError

    def list_for_student(
        self,
        student_id: int,
        *,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        newest_first: bool = False,
    ) -> Sequence[FeeRecord]:
        raise NotImplementedError

    def list_outstanding(self, student_id: int) -> Sequence[FeeRecord]:
        raise NotImplementedError

    def repair_all(self) -> tuple[int, int]:
        """Normalize stored due dates and re-derive stale columns. Returns (updated, skipped)."""

        raise NotImplementedError

    def delete_orphaned(self) -> list[int]:
        """Delete records whose student is missing or inactive; return their ids."""

        raise NotImplementedError

    def student_ledger(self, student_id: int) -> ContextManager[LedgerSession]:
        """Lock the student's ledger for a multi-step read-modify-write."""

        raise NotImplementedError
