from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import pytest
from werkzeug.security import generate_password_hash

from src.school_fees.school_fees.absence_fines.model import AbsenceFineTracking
from src.school_fees.school_fees.common.datetime_utils import same_month
from src.school_fees.school_fees.container import build_services
from src.school_fees.school_fees.core.enums import Role
from src.school_fees.school_fees.core.exceptions import ConcurrencyError, ValidationError
from src.school_fees.school_fees.fees.model import FeePage, FeeQuery, FeeRecord
from src.school_fees.school_fees.students.model import Student
from src.school_fees.school_fees.users.model import User
from src.school_fees.school_fees.users.service import SessionUser

NOW = datetime(2026, 10, 19, 9, 30)


class InMemoryUsers:
    def __init__(self, users: list[User]):
        self._by_id = {u.user_id: u for u in users}

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self._by_id.get(int(user_id))

    def get_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self._by_id.values() if u.username == username), None)


class InMemoryStudents:
    def __init__(self, students: list[Student]):
        self.by_id = {s.student_id: s for s in students}

    def get_by_id(self, student_id: int) -> Optional[Student]:
        return self.by_id.get(int(student_id))

    def get_by_user_id(self, user_id: int) -> Optional[Student]:
        return next((s for s in self.by_id.values() if s.user_id == user_id), None)

    def list_active(self):
        return [s for s in sorted(self.by_id.values(), key=lambda s: s.student_id) if s.is_active]


class _InMemoryLedger:
    def __init__(self, fees: "InMemoryFees", student_id: int):
        self._fees = fees
        self._student_id = student_id

    def outstanding(self):
        return self._fees.list_outstanding(self._student_id)

    def save(self, record: FeeRecord) -> FeeRecord:
        return self._fees.update(record)


class InMemoryFees:
    """Dict-backed fee store with the same unique key, version check and per-student lock as MySQL."""

    def __init__(self, students: InMemoryStudents, clock):
        self._students = students
        self._clock = clock
        self._rows: dict[int, FeeRecord] = {}
        self._next_id = 0
        self._guard = threading.RLock()
        self._ledger_locks: dict[int, threading.Lock] = {}

    def _fresh(self, record: FeeRecord) -> FeeRecord:
        return record.refreshed(self._clock())

    def _exists(self, record: FeeRecord) -> bool:
        key = (record.student_id, record.fee_type, record.period_due_date)
        return any(
            (r.student_id, r.fee_type, r.period_due_date) == key
            for r in self._rows.values()
            if r.fee_id != record.fee_id
        )

    def _store_new(self, record: FeeRecord) -> FeeRecord:
        self._next_id += 1
        stored = replace(self._fresh(record), fee_id=self._next_id, version=1)
        self._rows[stored.fee_id] = stored
        return stored

    def all(self) -> list[FeeRecord]:
        return [self._fresh(r) for r in sorted(self._rows.values(), key=lambda r: r.fee_id)]

    def get_by_id(self, fee_id: int) -> Optional[FeeRecord]:
        r = self._rows.get(int(fee_id))
        return self._fresh(r) if r else None

    def find_for_period(self, *, student_id, fee_type, period_due_date):
        for r in self.all():
            if r.student_id == student_id and r.fee_type == fee_type and same_month(r.period_due_date, period_due_date):
                return r
        return None

    def create(self, record: FeeRecord) -> FeeRecord:
        with self._guard:
            if self._exists(self._fresh(record)):
                raise ValidationError("duplicate fee for period")
            return self._store_new(record)

    def create_if_absent(self, record: FeeRecord) -> bool:
        with self._guard:
            if self._exists(self._fresh(record)):
                return False
            self._store_new(record)
            return True

    def update(self, record: FeeRecord) -> FeeRecord:
        with self._guard:
            current = self._rows.get(record.fee_id)
            if current is None or current.version != record.version:
                raise ConcurrencyError(f"Fee record {record.fee_id} was modified by another request")
            if self._exists(self._fresh(record)):
                raise ValidationError("duplicate fee for period")
            stored = replace(self._fresh(record), version=record.version + 1)
            self._rows[stored.fee_id] = stored
            return stored

    def delete(self, fee_id: int) -> bool:
        with self._guard:
            return self._rows.pop(int(fee_id), None) is not None

    def search(self, query: FeeQuery) -> FeePage:
        items = self.all()
        if query.student_ids:
            items = [r for r in items if r.student_id in query.student_ids]
        if query.month and query.year:
            items = [r for r in items if (r.period_due_date.year, r.period_due_date.month) == (query.year, query.month)]
        if query.status:
            items = [r for r in items if r.status == query.status]
        if query.fee_type:
            items = [r for r in items if r.fee_type == query.fee_type]
        items.sort(key=lambda r: (r.period_due_date, r.fee_id), reverse=True)
        return FeePage(
            records=items[query.offset : query.offset + query.limit],
            total=len(items),
            page=query.page,
            limit=query.limit,
        )

    def list_for_student(self, student_id, *, due_from=None, due_to=None, newest_first=False):
        items = [r for r in self.all() if r.student_id == int(student_id)]
        if due_from:
            items = [r for r in items if r.period_due_date >= due_from]
        if due_to:
            items = [r for r in items if r.period_due_date <= due_to]
        items.sort(key=lambda r: (r.period_due_date, r.fee_id), reverse=newest_first)
        return items

    def list_outstanding(self, student_id):
        return [r for r in self.list_for_student(student_id) if r.is_outstanding]

    def repair_all(self):
        updated = 0
        with self._guard:
            for fee_id, stored in list(self._rows.items()):
                fresh = self._fresh(stored)
                if fresh != stored:
                    self._rows[fee_id] = replace(fresh, version=stored.version + 1)
                    updated += 1
        return updated, len(self._rows) - updated

    def delete_orphaned(self):
        removed = []
        with self._guard:
            for fee_id, r in list(self._rows.items()):
                student = self._students.get_by_id(r.student_id)
                if not student or not student.is_active:
                    del self._rows[fee_id]
                    removed.append(fee_id)
        return removed

    def put_raw(self, record: FeeRecord) -> FeeRecord:
        """Store a record as-is (bypassing refresh), like a row written by an older build."""
        with self._guard:
            self._next_id += 1
            stored = replace(record, fee_id=self._next_id, version=1)
            self._rows[stored.fee_id] = stored
            return stored

    @contextmanager
    def student_ledger(self, student_id: int):
        with self._guard:
            lock = self._ledger_locks.setdefault(int(student_id), threading.Lock())
        with lock:
            yield _InMemoryLedger(self, int(student_id))


class InMemoryAbsenceFines:
    def __init__(self):
        self.rows: dict[int, AbsenceFineTracking] = {}

    def get(self, student_id: int) -> Optional[AbsenceFineTracking]:
        return self.rows.get(int(student_id))

    def save(self, tracking: AbsenceFineTracking) -> None:
        self.rows[tracking.student_id] = tracking


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def students() -> InMemoryStudents:
    return InMemoryStudents(
        [
            Student(1, "Aarav Sharma", "R-1001", "5", "A", date(2026, 7, 5), Decimal("2500"), True, 14),
            Student(2, "Diya Patel", "R-1002", "7", "B", date(2025, 1, 10), Decimal("0"), True),
            Student(3, "Kabir Singh", "R-1003", "9", "A", date(2024, 4, 1), Decimal("3000"), False),
            Student(4, "Meera Iyer", "R-1004", "1", "C", date(2026, 10, 2), Decimal("1800"), True),
        ]
    )


@pytest.fixture
def users() -> InMemoryUsers:
    return InMemoryUsers(
        [
            User(10, "Admin Demo", "admin", generate_password_hash("admin123"), Role.ADMIN),
            User(11, "Principal Demo", "principal", generate_password_hash("principal123"), Role.PRINCIPAL),
            User(12, "Accountant Demo", "accountant", generate_password_hash("accountant123"), Role.ACCOUNTANT),
            User(13, "Teacher Demo", "teacher", generate_password_hash("teacher123"), Role.TEACHER),
            User(14, "Aarav Sharma", "aarav", generate_password_hash("student123"), Role.STUDENT),
            User(15, "Old Account", "old", generate_password_hash("old123"), Role.STAFF, is_active=False),
        ]
    )


@pytest.fixture
def fees(students, clock) -> InMemoryFees:
    return InMemoryFees(students, clock)


@pytest.fixture
def absence_fines() -> InMemoryAbsenceFines:
    return InMemoryAbsenceFines()


@pytest.fixture
def container(users, students, fees, absence_fines, clock):
    return build_services(
        users_repo=users,
        students_repo=students,
        fees_repo=fees,
        absence_fines_repo=absence_fines,
        clock=clock,
    )


@pytest.fixture
def admin() -> SessionUser:
    return SessionUser(user_id=10, full_name="Admin Demo", role=Role.ADMIN)


@pytest.fixture
def principal() -> SessionUser:
    return SessionUser(user_id=11, full_name="Principal Demo", role=Role.PRINCIPAL)


@pytest.fixture
def accountant() -> SessionUser:
    return SessionUser(user_id=12, full_name="Accountant Demo", role=Role.ACCOUNTANT)


@pytest.fixture
def teacher() -> SessionUser:
    return SessionUser(user_id=13, full_name="Teacher Demo", role=Role.TEACHER)


@pytest.fixture
def student_user() -> SessionUser:
    return SessionUser(user_id=14, full_name="Aarav Sharma", role=Role.STUDENT, student_id=1)
