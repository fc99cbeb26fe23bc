from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterator, Optional, Sequence

from mysql.connector import errorcode
from mysql.connector.errors import IntegrityError

from ..common.datetime_utils import last_day_of_month, now_local
from ..core.enums import OUTSTANDING_STATUSES, FeeStatus, FeeType, PaymentMethod
from ..core.exceptions import ConcurrencyError, ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_date, as_decimal, db_cursor, fetchall, fetchone, placeholders
from .model import FeePage, FeeQuery, FeeRecord
from .repository import FeeRepository, LedgerSession

logger = logging.getLogger(__name__)

_COLUMNS = """
    fee_id, student_id, fee_type, period_due_date, base_amount, absence_fine, other_adjustments,
    amount, paid_amount, remaining_amount, status, payment_date, payment_method, transaction_id,
    receipt_number, remarks, recorded_by, version, created_at, updated_at
"""

_OUTSTANDING = tuple(s.value for s in OUTSTANDING_STATUSES)


def _overdue_cutoff(now: datetime) -> date:
    """Unpaid records due before this date are overdue as of `now`."""
    if now.time() == time.min:
        return now.date()
    return now.date() + timedelta(days=1)


def _to_record(r: dict, now: datetime) -> FeeRecord:
    # Derived columns are re-computed on read, so rows written before a rule
    # change (or by hand) never surface inconsistent.
    return FeeRecord.build(
        now=now,
        fee_id=int(r["fee_id"]),
        student_id=int(r["student_id"]),
        fee_type=FeeType(r["fee_type"]),
        period_due_date=as_date(r["period_due_date"]),
        base_amount=as_decimal(r["base_amount"]),
        absence_fine=as_decimal(r["absence_fine"]),
        other_adjustments=as_decimal(r["other_adjustments"]),
        paid_amount=as_decimal(r["paid_amount"]),
        payment_date=r.get("payment_date"),
        payment_method=PaymentMethod(r["payment_method"]) if r.get("payment_method") else None,
        transaction_id=r.get("transaction_id"),
        receipt_number=r.get("receipt_number"),
        remarks=r.get("remarks"),
        recorded_by=int(r["recorded_by"]) if r.get("recorded_by") is not None else None,
        version=int(r.get("version") or 0),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def _insert(cur, record: FeeRecord, *, ignore_duplicate: bool = False) -> int:
    verb = "INSERT IGNORE" if ignore_duplicate else "INSERT"
    cur.execute(
        f"""
        {verb} INTO fees(
            student_id, fee_type, period_due_date, base_amount, absence_fine, other_adjustments,
            amount, paid_amount, remaining_amount, status, payment_date, payment_method,
            transaction_id, receipt_number, remarks, recorded_by, version
        )
        VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,1)
        """,
        (
            record.student_id,
            record.fee_type.value,
            record.period_due_date,
            record.base_amount,
            record.absence_fine,
            record.other_adjustments,
            record.amount,
            record.paid_amount,
            record.remaining_amount,
            record.status.value,
            record.payment_date,
            record.payment_method.value if record.payment_method else None,
            record.transaction_id,
            record.receipt_number,
            record.remarks,
            record.recorded_by,
        ),
    )
    return int(cur.lastrowid or 0) if cur.rowcount > 0 else 0


def _update(cur, record: FeeRecord) -> FeeRecord:
    if record.fee_id is None:
        raise ValidationError("Cannot update a fee record that was never saved")
    cur.execute(
        """
        UPDATE fees
        SET period_due_date=%s, base_amount=%s, absence_fine=%s, other_adjustments=%s,
            amount=%s, paid_amount=%s, remaining_amount=%s, status=%s, payment_date=%s,
            payment_method=%s, transaction_id=%s, receipt_number=%s, remarks=%s,
            recorded_by=%s, version=version+1
        WHERE fee_id=%s AND version=%s
        """,
        (
            record.period_due_date,
            record.base_amount,
            record.absence_fine,
            record.other_adjustments,
            record.amount,
            record.paid_amount,
            record.remaining_amount,
            record.status.value,
            record.payment_date,
            record.payment_method.value if record.payment_method else None,
            record.transaction_id,
            record.receipt_number,
            record.remarks,
            record.recorded_by,
            int(record.fee_id),
            int(record.version),
        ),
    )
    if cur.rowcount == 0:
        raise ConcurrencyError(f"Fee record {record.fee_id} was modified by another request, reload and retry")
    return FeeRecord(**{**{f: getattr(record, f) for f in record.__dataclass_fields__}, "version": record.version + 1})


class _MySQLLedgerSession(LedgerSession):
    def __init__(self, cur, student_id: int, *, now: datetime, prepare: Callable[[FeeRecord], FeeRecord]):
        self._cur = cur
        self._student_id = int(student_id)
        self._now = now
        self._prepare = prepare

    def outstanding(self) -> Sequence[FeeRecord]:
        self._cur.execute(
            f"""
            SELECT {_COLUMNS} FROM fees
            WHERE student_id=%s AND status IN ({placeholders(_OUTSTANDING)})
            ORDER BY period_due_date ASC, fee_id ASC
            FOR UPDATE
            """,
            (self._student_id, *_OUTSTANDING),
        )
        return [_to_record(r, self._now) for r in fetchall(self._cur)]

    def save(self, record: FeeRecord) -> FeeRecord:
        return _update(self._cur, self._prepare(record))


class MySQLFeeRepository(FeeRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, clock: Callable[[], datetime] = now_local):
        self._conn_factory = conn_factory
        self._clock = clock

    def _prepare(self, record: FeeRecord) -> FeeRecord:
        # Every write re-derives totals/status through the model's recompute routine.
        return record.refreshed(self._clock())

    def get_by_id(self, fee_id: int) -> Optional[FeeRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM fees WHERE fee_id=%s", (int(fee_id),))
            r = fetchone(cur)
            return _to_record(r, self._clock()) if r else None

    def find_for_period(self, *, student_id: int, fee_type: FeeType, period_due_date: date) -> Optional[FeeRecord]:
        start = period_due_date.replace(day=1)
        end = last_day_of_month(period_due_date.year, period_due_date.month)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM fees
                WHERE student_id=%s AND fee_type=%s AND period_due_date BETWEEN %s AND %s
                ORDER BY fee_id ASC
                LIMIT 1
                """,
                (int(student_id), fee_type.value, start, end),
            )
            r = fetchone(cur)
            return _to_record(r, self._clock()) if r else None

    def create(self, record: FeeRecord) -> FeeRecord:
        record = self._prepare(record)
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                fee_id = _insert(cur, record)
        except IntegrityError as e:
            if e.errno == errorcode.ER_DUP_ENTRY:
                raise ValidationError(
                    f"A {record.fee_type.value} fee already exists for this student in {record.period_due_date:%m/%Y}"
                )
            raise
        return FeeRecord(**{**{f: getattr(record, f) for f in record.__dataclass_fields__}, "fee_id": fee_id, "version": 1})

    def create_if_absent(self, record: FeeRecord) -> bool:
        record = self._prepare(record)
        with db_cursor(self._conn_factory) as (_, cur):
            return _insert(cur, record, ignore_duplicate=True) > 0

    def update(self, record: FeeRecord) -> FeeRecord:
        record = self._prepare(record)
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                return _update(cur, record)
        except IntegrityError as e:
            if e.errno == errorcode.ER_DUP_ENTRY:
                raise ValidationError(
                    f"A {record.fee_type.value} fee already exists for this student in {record.period_due_date:%m/%Y}"
                )
            raise

    def delete(self, fee_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM fees WHERE fee_id=%s", (int(fee_id),))
            return cur.rowcount > 0

    def search(self, query: FeeQuery) -> FeePage:
        clauses: list[str] = []
        params: list[object] = []
        now = self._clock()

        if query.student_ids:
            clauses.append(f"student_id IN ({placeholders(query.student_ids)})")
            params.extend(int(s) for s in query.student_ids)
        if query.month and query.year:
            clauses.append("period_due_date BETWEEN %s AND %s")
            params.extend([date(query.year, query.month, 1), last_day_of_month(query.year, query.month)])
        if query.status in (FeeStatus.UNPAID, FeeStatus.OVERDUE):
            # Stored unpaid/overdue can lag the clock; split them on the due date instead.
            op = "<" if query.status == FeeStatus.OVERDUE else ">="
            clauses.append(f"status IN (%s,%s) AND period_due_date {op} %s")
            params.extend([FeeStatus.UNPAID.value, FeeStatus.OVERDUE.value, _overdue_cutoff(now)])
        elif query.status is not None:
            clauses.append("status=%s")
            params.append(query.status.value)
        if query.fee_type is not None:
            clauses.append("fee_type=%s")
            params.append(query.fee_type.value)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM fees {where}", tuple(params))
            total = int((fetchone(cur) or {}).get("total") or 0)

            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM fees {where}
                ORDER BY period_due_date DESC, fee_id DESC
                LIMIT %s OFFSET %s
                """,
                (*params, int(query.limit), int(query.offset)),
            )
            records = [_to_record(r, now) for r in fetchall(cur)]

        return FeePage(records=records, total=total, page=query.page, limit=query.limit)

    def list_for_student(
        self,
        student_id: int,
        *,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        newest_first: bool = False,
    ) -> Sequence[FeeRecord]:
        clauses = ["student_id=%s"]
        params: list[object] = [int(student_id)]
        if due_from is not None:
            clauses.append("period_due_date >= %s")
            params.append(due_from)
        if due_to is not None:
            clauses.append("period_due_date <= %s")
            params.append(due_to)
        order = "DESC" if newest_first else "ASC"
        now = self._clock()

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM fees
                WHERE {' AND '.join(clauses)}
                ORDER BY period_due_date {order}, fee_id {order}
                """,
                tuple(params),
            )
            return [_to_record(r, now) for r in fetchall(cur)]

    def list_outstanding(self, student_id: int) -> Sequence[FeeRecord]:
        now = self._clock()
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM fees
                WHERE student_id=%s AND status IN ({placeholders(_OUTSTANDING)})
                ORDER BY period_due_date ASC, fee_id ASC
                """,
                (int(student_id), *_OUTSTANDING),
            )
            return [_to_record(r, now) for r in fetchall(cur)]

    def repair_all(self) -> tuple[int, int]:
        """Rewrite rows whose stored due date or derived columns are stale.

        Returns (updated, skipped). Rows that would collide with another record
        for the same period after normalization are logged and skipped.
        """
        now = self._clock()
        updated = 0
        skipped = 0
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM fees ORDER BY fee_id ASC FOR UPDATE")
            for r in fetchall(cur):
                record = _to_record(r, now)
                stored = (
                    as_date(r["period_due_date"]),
                    as_decimal(r["amount"]),
                    as_decimal(r["remaining_amount"]),
                    r["status"],
                )
                derived = (record.period_due_date, record.amount, record.remaining_amount, record.status.value)
                if stored == derived:
                    skipped += 1
                    continue
                try:
                    _update(cur, record)
                except IntegrityError:
                    logger.warning("Fee %s collides with another record for %s, left as is", record.fee_id, record.period_due_date)
                    skipped += 1
                    continue
                updated += 1
        return updated, skipped

    def delete_orphaned(self) -> list[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT f.fee_id
                FROM fees f
                LEFT JOIN students s ON s.student_id = f.student_id
                WHERE s.student_id IS NULL OR s.is_active = 0
                FOR UPDATE
                """
            )
            ids = [int(r["fee_id"]) for r in fetchall(cur)]
            if ids:
                cur.execute(f"DELETE FROM fees WHERE fee_id IN ({placeholders(ids)})", tuple(ids))
            return ids

    @contextmanager
    def student_ledger(self, student_id: int) -> Iterator[LedgerSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            # Row lock on the student serializes concurrent payments for the same ledger.
            cur.execute("SELECT student_id FROM students WHERE student_id=%s FOR UPDATE", (int(student_id),))
            fetchone(cur)
            yield _MySQLLedgerSession(cur, student_id, now=self._clock(), prepare=self._prepare)
