from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from src.school_fees.school_fees.core.enums import FeeStatus, FeeType
from src.school_fees.school_fees.fees.calculator import (
    aggregate_outstanding,
    calculate_arrears,
    overall_status,
    summarize_statement,
)
from src.school_fees.school_fees.fees.model import FeeRecord

NOW = datetime(2026, 10, 19, 9, 30)
TODAY = NOW.date()


def _fee(due: date, base="2500", paid="0", fine="0", adj="0", fee_id=None, fee_type=FeeType.TUITION) -> FeeRecord:
    return FeeRecord.build(
        fee_id=fee_id,
        student_id=1,
        fee_type=fee_type,
        period_due_date=due,
        base_amount=Decimal(base),
        absence_fine=Decimal(fine),
        other_adjustments=Decimal(adj),
        paid_amount=Decimal(paid),
        now=NOW,
    )


def test_three_unpaid_months_since_admission_make_7500_arrears():
    records = [_fee(date(2026, m, 1)) for m in (7, 8, 9)] + [_fee(date(2026, 10, 1))]
    report = calculate_arrears(records, today=TODAY, admission_date=date(2026, 7, 5))

    assert report.total_arrears == Decimal("7500")
    assert [e.month for e in report.breakdown] == ["July 2026", "August 2026", "September 2026"]
    assert all(e.amount == Decimal("2500") for e in report.breakdown)
    assert all(e.status == FeeStatus.OVERDUE for e in report.breakdown)


def test_current_month_is_never_arrears_even_if_overdue():
    # due 31 Oct, but "now" is already past it
    late_now = datetime(2026, 10, 31, 18, 0)
    current = FeeRecord.build(
        student_id=1, fee_type=FeeType.TUITION, period_due_date=date(2026, 10, 31), base_amount=Decimal("100"), now=late_now
    )
    assert current.status == FeeStatus.OVERDUE
    assert calculate_arrears([current], today=late_now.date()).total_arrears == Decimal("0")


def test_last_day_of_previous_month_is_arrears():
    report = calculate_arrears([_fee(date(2026, 9, 30), base="400")], today=date(2026, 10, 1))
    assert report.total_arrears == Decimal("400")
    assert len(report.breakdown) == 1


def test_partial_payments_count_only_the_remainder():
    report = calculate_arrears([_fee(date(2026, 8, 31), paid="1000"), _fee(date(2026, 9, 30), paid="2500")], today=TODAY)
    assert report.total_arrears == Decimal("1500")
    assert report.breakdown[0].status == FeeStatus.PARTIAL


def test_student_admitted_this_month_has_no_arrears():
    records = [_fee(date(2026, 9, 30))]
    report = calculate_arrears(records, today=TODAY, admission_date=date(2026, 10, 2))
    assert report.total_arrears == Decimal("0")
    assert report.breakdown == []


def test_months_before_admission_are_ignored():
    records = [_fee(date(2026, 5, 31)), _fee(date(2026, 6, 30)), _fee(date(2026, 7, 31))]
    report = calculate_arrears(records, today=TODAY, admission_date=date(2026, 6, 20))
    assert [e.due_date for e in report.breakdown] == [date(2026, 6, 30), date(2026, 7, 31)]


def test_breakdown_is_oldest_first():
    records = [_fee(date(2026, 9, 30)), _fee(date(2026, 3, 31)), _fee(date(2026, 6, 30))]
    report = calculate_arrears(records, today=TODAY)
    assert [e.due_date.month for e in report.breakdown] == [3, 6, 9]


def test_aggregate_splits_current_month_from_older_arrears():
    records = [
        _fee(date(2026, 8, 31), fee_id=1, paid="500"),
        _fee(date(2026, 9, 30), fee_id=2),
        _fee(date(2026, 10, 31), fee_id=3, fine="500", adj="100"),
    ]
    agg = aggregate_outstanding(records, student_id=1, today=TODAY)

    assert agg.current_month_fee_id == 3
    assert agg.base_amount == Decimal("2500")
    assert agg.previous_arrears == Decimal("4500")
    assert agg.absence_fines == Decimal("500")
    assert agg.other_fines == Decimal("100")
    assert agg.total_due == Decimal("7600")
    assert agg.unpaid_fees_count == 3


def test_overall_status_priority():
    assert overall_status([]) == "no_fees"
    assert overall_status([_fee(date(2026, 9, 30), paid="2500"), _fee(date(2026, 11, 30), paid="10")]) == "partial"
    assert overall_status([_fee(date(2026, 11, 30)), _fee(date(2026, 9, 30))]) == "overdue"
    assert overall_status([_fee(date(2026, 11, 30)), _fee(date(2026, 12, 31), paid="5")]) == "unpaid"
    assert overall_status([_fee(date(2026, 9, 30), paid="2500")]) == "paid"


def test_statement_summary_totals():
    records = [
        _fee(date(2026, 8, 31), paid="2500"),
        _fee(date(2026, 9, 30), paid="1000", fine="500"),
        _fee(date(2026, 10, 31), adj="200"),
    ]
    summary = summarize_statement(records, today=TODAY)

    assert summary.total_assigned == Decimal("7500")
    assert summary.total_paid == Decimal("3500")
    assert summary.total_fines == Decimal("700")
    assert summary.total_arrears == Decimal("2000")
    assert summary.remaining_balance == Decimal("4700")
    assert summary.overall_status == "unpaid"
