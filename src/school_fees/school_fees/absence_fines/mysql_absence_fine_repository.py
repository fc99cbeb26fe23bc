from __future__ import annotations

from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_date, as_decimal, db_cursor, fetchall, fetchone
from .model import AbsenceFineTracking, MonthlyAbsenceEntry
from .repository import AbsenceFineRepository


def _to_entry(r: dict) -> MonthlyAbsenceEntry:
    return MonthlyAbsenceEntry(
        year=int(r["year"]),
        month=int(r["month"]),
        absence_count=int(r["absence_count"]),
        had_excessive_absences=bool(r["had_excessive_absences"]),
        fine_amount=as_decimal(r["fine_amount"]),
        consecutive_month_number=int(r["consecutive_month_number"]),
    )


class MySQLAbsenceFineRepository(AbsenceFineRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, student_id: int) -> Optional[AbsenceFineTracking]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT student_id, consecutive_months, last_excessive_absence_month, is_active
                FROM absence_fine_tracking
                WHERE student_id=%s
                """,
                (int(student_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            cur.execute(
                """
                SELECT year, month, absence_count, had_excessive_absences, fine_amount, consecutive_month_number
                FROM absence_fine_history
                WHERE student_id=%s
                ORDER BY year DESC, month DESC
                """,
                (int(student_id),),
            )
            history = tuple(_to_entry(h) for h in fetchall(cur))
            return AbsenceFineTracking(
                student_id=int(r["student_id"]),
                consecutive_months=int(r["consecutive_months"] or 0),
                last_excessive_absence_month=as_date(r.get("last_excessive_absence_month")),
                history=history,
                is_active=bool(r.get("is_active", True)),
            )

    def save(self, tracking: AbsenceFineTracking) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO absence_fine_tracking(student_id, consecutive_months, last_excessive_absence_month, is_active)
                VALUES(%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    consecutive_months=VALUES(consecutive_months),
                    last_excessive_absence_month=VALUES(last_excessive_absence_month),
                    is_active=VALUES(is_active)
                """,
                (
                    tracking.student_id,
                    tracking.consecutive_months,
                    tracking.last_excessive_absence_month,
                    1 if tracking.is_active else 0,
                ),
            )
            cur.execute("DELETE FROM absence_fine_history WHERE student_id=%s", (tracking.student_id,))
            if tracking.history:
                cur.executemany(
                    """
                    INSERT INTO absence_fine_history(
                        student_id, year, month, absence_count, had_excessive_absences,
                        fine_amount, consecutive_month_number
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s)
                    """,
                    [
                        (
                            tracking.student_id,
                            e.year,
                            e.month,
                            e.absence_count,
                            1 if e.had_excessive_absences else 0,
                            e.fine_amount,
                            e.consecutive_month_number,
                        )
                        for e in tracking.history
                    ],
                )
