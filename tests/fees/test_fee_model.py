from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from src.school_fees.school_fees.core.enums import FeeStatus, FeeType, PaymentMethod
from src.school_fees.school_fees.core.exceptions import ValidationError
from src.school_fees.school_fees.fees.model import FeeRecord, derive_status, recompute

NOW = datetime(2026, 10, 19, 9, 30)


def _fee(**kw) -> FeeRecord:
    defaults = dict(
        student_id=1,
        fee_type=FeeType.TUITION,
        period_due_date=date(2026, 10, 31),
        base_amount=Decimal("2500"),
        now=NOW,
    )
    defaults.update(kw)
    return FeeRecord.build(**defaults)


def test_build_normalizes_due_date_to_month_end():
    fee = _fee(period_due_date=date(2026, 2, 3))
    assert fee.period_due_date == date(2026, 2, 28)


def test_amount_and_remaining_follow_addends():
    fee = _fee(absence_fine=Decimal("500"), other_adjustments=Decimal("150"), paid_amount=Decimal("1000"))
    assert fee.amount == Decimal("3150")
    assert fee.remaining_amount == Decimal("2150")
    assert fee.status == FeeStatus.PARTIAL


def test_overpaid_record_has_zero_remaining_and_is_paid():
    fee = _fee(paid_amount=Decimal("3000"))
    assert fee.remaining_amount == Decimal("0")
    assert fee.status == FeeStatus.PAID
    assert fee.payment_date == NOW


@pytest.mark.parametrize(
    "amount, paid, due, expected",
    [
        ("100", "100", date(2026, 12, 31), FeeStatus.PAID),
        ("100", "40", date(2026, 1, 31), FeeStatus.PARTIAL),
        ("100", "0", date(2026, 9, 30), FeeStatus.OVERDUE),
        ("100", "0", date(2026, 10, 31), FeeStatus.UNPAID),
        ("0", "0", date(2026, 9, 30), FeeStatus.PAID),
    ],
)
def test_status_is_derived(amount, paid, due, expected):
    status = derive_status(amount=Decimal(amount), paid_amount=Decimal(paid), period_due_date=due, now=NOW)
    assert status == expected


def test_due_today_is_overdue_once_the_day_has_started():
    assert derive_status(
        amount=Decimal("10"), paid_amount=Decimal("0"), period_due_date=date(2026, 10, 31), now=datetime(2026, 10, 31, 8)
    ) == FeeStatus.OVERDUE


def test_inconsistent_record_cannot_be_constructed():
    fee = _fee()
    fields = {f: getattr(fee, f) for f in fee.__dataclass_fields__}
    with pytest.raises(ValidationError):
        FeeRecord(**{**fields, "amount": Decimal("1")})
    with pytest.raises(ValidationError):
        FeeRecord(**{**fields, "status": FeeStatus.PAID})
    with pytest.raises(ValidationError):
        FeeRecord(**{**fields, "period_due_date": date(2026, 10, 15)})


def test_negative_addends_are_rejected():
    with pytest.raises(ValidationError):
        _fee(absence_fine=Decimal("-1"))


def test_with_adjustments_keeps_omitted_values():
    fee = _fee(absence_fine=Decimal("500"), other_adjustments=Decimal("100"))
    changed = fee.with_adjustments(now=NOW, other_adjustments=Decimal("0"))
    assert changed.absence_fine == Decimal("500")
    assert changed.other_adjustments == Decimal("0")
    assert changed.amount == Decimal("3000")


def test_with_payment_accumulates_and_stamps_details():
    fee = _fee()
    once = fee.with_payment(Decimal("1000"), now=NOW, payment_method=PaymentMethod.CASH, transaction_id="T1")
    twice = once.with_payment(Decimal("1500"), now=NOW, remarks="settled")
    assert twice.paid_amount == Decimal("2500")
    assert twice.status == FeeStatus.PAID
    assert twice.payment_method == PaymentMethod.CASH
    assert twice.transaction_id == "T1"
    assert twice.remarks == "settled"


def test_with_payment_requires_positive_amount():
    with pytest.raises(ValidationError):
        _fee().with_payment(Decimal("0"), now=NOW)


def test_with_changes_ignores_derived_fields_and_blocks_refunds():
    fee = _fee(paid_amount=Decimal("500"))
    changed = fee.with_changes(now=NOW, base_amount=Decimal("3000"), status=FeeStatus.PAID, amount=Decimal("1"))
    assert changed.amount == Decimal("3000")
    assert changed.status == FeeStatus.PARTIAL
    with pytest.raises(ValidationError):
        fee.with_changes(now=NOW, paid_amount=Decimal("100"))


def test_recompute_keeps_existing_payment_date():
    earlier = datetime(2026, 9, 1, 12, 0)
    out = recompute(
        dict(
            period_due_date=date(2026, 9, 10),
            base_amount=Decimal("100"),
            paid_amount=Decimal("100"),
            payment_date=earlier,
        ),
        NOW,
    )
    assert out["payment_date"] == earlier
    assert out["period_due_date"] == date(2026, 9, 30)


def test_to_dict_uses_camel_case_numbers():
    data = _fee(absence_fine=Decimal("500")).to_dict()
    assert data["feeType"] == "tuition"
    assert data["dueDate"] == "2026-10-31"
    assert data["amount"] == 3000.0
    assert data["remainingAmount"] == 3000.0
    assert data["status"] == "unpaid"
