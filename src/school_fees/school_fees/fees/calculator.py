"""Read-only projections over a student's fee records.

All functions are pure: callers pass the records and the reference date.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import month_label, month_start, same_month
from ..core.enums import FeeStatus
from .model import ZERO, AggregatedFees, ArrearsEntry, ArrearsReport, FeeRecord, StatementSummary


def _remaining(record: FeeRecord) -> Decimal:
    value = record.remaining_amount or ZERO
    return value if value > 0 else ZERO


def _by_due_date(records: Iterable[FeeRecord]) -> list[FeeRecord]:
    return sorted(records, key=lambda r: (r.period_due_date, r.fee_id or 0))


def calculate_arrears(
    records: Sequence[FeeRecord],
    *,
    today: date,
    admission_date: Optional[date] = None,
) -> ArrearsReport:
    """Outstanding balance carried from months before the current one.

    Records due on or after the first of the current month are never arrears,
    whatever their stored status. Nothing is owed for months before the
    student's admission month, and a student admitted this month (or later)
    has no arrears at all.
    """
    current_month = month_start(today)
    if admission_date is not None and month_start(admission_date) >= current_month:
        return ArrearsReport()

    earliest = month_start(admission_date) if admission_date is not None else None

    total = ZERO
    breakdown: list[ArrearsEntry] = []
    for r in _by_due_date(records):
        if r.period_due_date >= current_month or not r.is_outstanding:
            continue
        if earliest is not None and r.period_due_date < earliest:
            continue
        remaining = _remaining(r)
        if remaining <= 0:
            continue
        total += remaining
        breakdown.append(
            ArrearsEntry(
                month=month_label(r.period_due_date),
                amount=remaining,
                fee_type=r.fee_type,
                status=r.status,
                due_date=r.period_due_date,
            )
        )
    return ArrearsReport(total_arrears=total, breakdown=breakdown)


def aggregate_outstanding(records: Sequence[FeeRecord], *, student_id: int, today: date) -> AggregatedFees:
    """Split outstanding records into this month's charge and older arrears."""
    base_amount = ZERO
    previous_arrears = ZERO
    absence_fines = ZERO
    other_fines = ZERO
    current_month_fee_id = None

    outstanding = [r for r in _by_due_date(records) if r.is_outstanding]
    for r in outstanding:
        if same_month(r.period_due_date, today):
            base_amount = r.base_amount
            current_month_fee_id = r.fee_id
            absence_fines += r.absence_fine
            other_fines += r.other_adjustments
        else:
            previous_arrears += _remaining(r)

    return AggregatedFees(
        student_id=int(student_id),
        current_month_fee_id=current_month_fee_id,
        base_amount=base_amount,
        previous_arrears=previous_arrears,
        absence_fines=absence_fines,
        other_fines=other_fines,
        unpaid_fees_count=len(outstanding),
    )


def overall_status(records: Sequence[FeeRecord]) -> str:
    if not records:
        return "no_fees"
    statuses = {r.status for r in records}
    for status in (FeeStatus.OVERDUE, FeeStatus.UNPAID, FeeStatus.PARTIAL):
        if status in statuses:
            return status.value
    return FeeStatus.PAID.value


def summarize_statement(records: Sequence[FeeRecord], *, today: date) -> StatementSummary:
    current_month = month_start(today)
    total_assigned = ZERO
    total_paid = ZERO
    total_arrears = ZERO
    total_fines = ZERO

    for r in records:
        total_assigned += r.base_amount
        total_paid += r.paid_amount
        total_fines += r.absence_fine + r.other_adjustments
        if r.period_due_date < current_month and r.status != FeeStatus.PAID:
            total_arrears += _remaining(r)

    return StatementSummary(
        total_assigned=total_assigned,
        total_paid=total_paid,
        total_arrears=total_arrears,
        total_fines=total_fines,
        overall_status=overall_status(records),
    )
