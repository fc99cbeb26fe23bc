from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from ..core.exceptions import ValidationError
from .model import ZERO, FeeRecord


def oldest_first(records: Sequence[FeeRecord]) -> list[FeeRecord]:
    return sorted(records, key=lambda r: (r.period_due_date, r.fee_id or 0))


def most_recent(records: Sequence[FeeRecord]) -> Optional[FeeRecord]:
    ordered = oldest_first(records)
    return ordered[-1] if ordered else None


def plan_allocation(records: Sequence[FeeRecord], payment: Decimal) -> tuple[list[tuple[FeeRecord, Decimal]], Decimal]:
    """Spread one payment over outstanding records, oldest due date first.

    Returns (record, applied) pairs for every record that receives money and
    the part of the payment left over once every record is settled. The sum of
    applied amounts never exceeds `payment`.
    """
    payment = Decimal(payment)
    if payment <= 0:
        raise ValidationError("paidAmount must be greater than zero")

    remaining = payment
    plan: list[tuple[FeeRecord, Decimal]] = []
    for record in oldest_first(records):
        if remaining <= 0:
            break
        if not record.is_outstanding:
            continue
        applied = min(remaining, max(record.remaining_amount, ZERO))
        if applied <= 0:
            continue
        plan.append((record, applied))
        remaining -= applied
    return plan, remaining
