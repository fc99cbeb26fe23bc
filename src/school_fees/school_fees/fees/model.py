from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from ..common.datetime_utils import month_end
from ..core.enums import OUTSTANDING_STATUSES, FeeStatus, FeeType, PaymentMethod
from ..core.exceptions import ValidationError

ZERO = Decimal("0")


def derive_status(*, amount: Decimal, paid_amount: Decimal, period_due_date: date, now: datetime) -> FeeStatus:
    """Status is a pure function of (amount, paid, due date, now)."""
    if paid_amount >= amount:
        return FeeStatus.PAID
    if paid_amount > 0:
        return FeeStatus.PARTIAL
    # Due dates are stored as the start of the month's last day.
    if datetime.combine(period_due_date, time.min) < now:
        return FeeStatus.OVERDUE
    return FeeStatus.UNPAID


def _status_matches_amounts(status: FeeStatus, amount: Decimal, paid_amount: Decimal) -> bool:
    if paid_amount >= amount:
        return status == FeeStatus.PAID
    if paid_amount > 0:
        return status == FeeStatus.PARTIAL
    return status in (FeeStatus.UNPAID, FeeStatus.OVERDUE)


@dataclass(frozen=True)
class FeeRecord:
    """One charge for one student for one billing period.

    `amount`, `remaining_amount` and `status` are derived. Build records with
    `FeeRecord.build` and change them through the `with_*` methods; all of
    them go through `recompute`, and `__post_init__` rejects any instance
    whose derived fields disagree with its addends.
    """

    student_id: int
    fee_type: FeeType
    period_due_date: date
    base_amount: Decimal
    absence_fine: Decimal
    other_adjustments: Decimal
    paid_amount: Decimal
    amount: Decimal
    remaining_amount: Decimal
    status: FeeStatus
    fee_id: Optional[int] = None
    payment_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = None
    receipt_number: Optional[str] = None
    remarks: Optional[str] = None
    recorded_by: Optional[int] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        for name in ("base_amount", "absence_fine", "other_adjustments", "paid_amount"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} cannot be negative")
        if self.period_due_date != month_end(self.period_due_date):
            raise ValidationError("Due date must be the last day of the billing month")
        if self.amount != self.base_amount + self.absence_fine + self.other_adjustments:
            raise ValidationError("amount does not match baseAmount + absenceFine + otherAdjustments")
        if self.remaining_amount != max(ZERO, self.amount - self.paid_amount):
            raise ValidationError("remainingAmount does not match amount - paidAmount")
        if not _status_matches_amounts(self.status, self.amount, self.paid_amount):
            raise ValidationError(f"status {self.status.value} does not match the paid amount")

    @classmethod
    def build(
        cls,
        *,
        student_id: int,
        fee_type: FeeType,
        period_due_date: date,
        base_amount: Decimal,
        now: datetime,
        absence_fine: Decimal = ZERO,
        other_adjustments: Decimal = ZERO,
        paid_amount: Decimal = ZERO,
        **extra,
    ) -> "FeeRecord":
        fields = dict(
            student_id=int(student_id),
            fee_type=fee_type,
            period_due_date=period_due_date,
            base_amount=Decimal(base_amount),
            absence_fine=Decimal(absence_fine),
            other_adjustments=Decimal(other_adjustments),
            paid_amount=Decimal(paid_amount),
            **extra,
        )
        return cls(**recompute(fields, now))

    def _rebuild(self, now: datetime, **changes) -> "FeeRecord":
        fields = {f: getattr(self, f) for f in self.__dataclass_fields__}
        fields.update(changes)
        return FeeRecord(**recompute(fields, now))

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_STATUSES

    def refreshed(self, now: datetime) -> "FeeRecord":
        """Re-derive due date normalization, totals and status as of `now`."""
        return self._rebuild(now)

    def with_adjustments(
        self,
        *,
        now: datetime,
        absence_fine: Optional[Decimal] = None,
        other_adjustments: Optional[Decimal] = None,
    ) -> "FeeRecord":
        changes = {}
        if absence_fine is not None:
            changes["absence_fine"] = Decimal(absence_fine)
        if other_adjustments is not None:
            changes["other_adjustments"] = Decimal(other_adjustments)
        return self._rebuild(now, **changes)

    def with_payment(
        self,
        applied: Decimal,
        *,
        now: datetime,
        payment_method: Optional[PaymentMethod] = None,
        transaction_id: Optional[str] = None,
        remarks: Optional[str] = None,
        recorded_by: Optional[int] = None,
    ) -> "FeeRecord":
        applied = Decimal(applied)
        if applied <= 0:
            raise ValidationError("Payment applied to a fee must be greater than zero")
        return self._rebuild(
            now,
            paid_amount=self.paid_amount + applied,
            payment_method=payment_method or self.payment_method,
            transaction_id=transaction_id if transaction_id is not None else self.transaction_id,
            remarks=remarks if remarks is not None else self.remarks,
            payment_date=now,
            recorded_by=recorded_by if recorded_by is not None else self.recorded_by,
        )

    def with_changes(self, *, now: datetime, **changes) -> "FeeRecord":
        """Manual edit by staff. Derived fields cannot be set and paid amount only grows."""
        for derived in ("amount", "remaining_amount", "status"):
            changes.pop(derived, None)
        if "paid_amount" in changes and Decimal(changes["paid_amount"]) < self.paid_amount:
            raise ValidationError("paidAmount cannot decrease")
        return self._rebuild(now, **changes)

    def with_receipt_number(self, receipt_number: str, *, now: datetime) -> "FeeRecord":
        return self._rebuild(now, receipt_number=receipt_number)

    def to_dict(self) -> dict:
        return {
            "id": self.fee_id,
            "studentId": self.student_id,
            "feeType": self.fee_type.value,
            "dueDate": self.period_due_date.isoformat(),
            "baseAmount": float(self.base_amount),
            "absenceFine": float(self.absence_fine),
            "otherAdjustments": float(self.other_adjustments),
            "amount": float(self.amount),
            "paidAmount": float(self.paid_amount),
            "remainingAmount": float(self.remaining_amount),
            "status": self.status.value,
            "paymentDate": self.payment_date.isoformat() if self.payment_date else None,
            "paymentMethod": self.payment_method.value if self.payment_method else None,
            "transactionId": self.transaction_id,
            "receiptNumber": self.receipt_number,
            "remarks": self.remarks,
            "recordedBy": self.recorded_by,
            "version": self.version,
        }


def recompute(fields: dict, now: datetime) -> dict:
    """The single place derived fee fields are computed.

    Normalizes the due date to month end, then derives amount,
    remaining amount and status, and stamps the payment date the first time
    the record becomes paid.
    """
    out = dict(fields)
    for name in ("base_amount", "absence_fine", "other_adjustments", "paid_amount"):
        value = Decimal(out.get(name) or 0)
        if value < 0:
            raise ValidationError(f"{name} cannot be negative")
        out[name] = value

    out["period_due_date"] = month_end(out["period_due_date"])
    out["amount"] = out["base_amount"] + out["absence_fine"] + out["other_adjustments"]
    out["remaining_amount"] = max(ZERO, out["amount"] - out["paid_amount"])
    out["status"] = derive_status(
        amount=out["amount"],
        paid_amount=out["paid_amount"],
        period_due_date=out["period_due_date"],
        now=now,
    )
    if out["status"] == FeeStatus.PAID and not out.get("payment_date"):
        out["payment_date"] = now
    return out


@dataclass(frozen=True)
class FeeQuery:
    student_ids: tuple[int, ...] = ()
    month: Optional[int] = None
    year: Optional[int] = None
    status: Optional[FeeStatus] = None
    fee_type: Optional[FeeType] = None
    page: int = 1
    limit: int = 25

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class FeePage:
    records: list[FeeRecord]
    total: int
    page: int
    limit: int

    def pagination(self) -> dict:
        out: dict = {}
        start = (self.page - 1) * self.limit
        if start + self.limit < self.total:
            out["next"] = {"page": self.page + 1, "limit": self.limit}
        if start > 0:
            out["prev"] = {"page": self.page - 1, "limit": self.limit}
        return out


@dataclass(frozen=True)
class ArrearsEntry:
    month: str
    amount: Decimal
    fee_type: FeeType
    status: FeeStatus
    due_date: date

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "amount": float(self.amount),
            "feeType": self.fee_type.value,
            "status": self.status.value,
            "dueDate": self.due_date.isoformat(),
        }


@dataclass(frozen=True)
class ArrearsReport:
    total_arrears: Decimal = ZERO
    breakdown: list[ArrearsEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalArrears": float(self.total_arrears),
            "breakdown": [e.to_dict() for e in self.breakdown],
        }


@dataclass(frozen=True)
class Allocation:
    fee_id: Optional[int]
    applied: Decimal


@dataclass(frozen=True)
class PaymentResult:
    allocations: list[Allocation]
    remaining_payment: Decimal

    @property
    def updated_fees(self) -> int:
        return len(self.allocations)

    def to_dict(self) -> dict:
        return {
            "updatedFees": self.updated_fees,
            "remainingPayment": float(self.remaining_payment),
            "allocations": [{"feeId": a.fee_id, "applied": float(a.applied)} for a in self.allocations],
        }


@dataclass(frozen=True)
class GenerationResult:
    month: int
    year: int
    created: int
    updated: int
    errors: list[dict]
    total_students: int

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
            "totalStudents": self.total_students,
        }


@dataclass(frozen=True)
class AggregatedFees:
    student_id: int
    current_month_fee_id: Optional[int]
    base_amount: Decimal
    previous_arrears: Decimal
    absence_fines: Decimal
    other_fines: Decimal
    unpaid_fees_count: int

    @property
    def total_due(self) -> Decimal:
        return self.base_amount + self.previous_arrears + self.absence_fines + self.other_fines

    def to_dict(self) -> dict:
        return {
            "studentId": self.student_id,
            "currentMonthFeeId": self.current_month_fee_id,
            "baseAmount": float(self.base_amount),
            "previousArrears": float(self.previous_arrears),
            "absenceFines": float(self.absence_fines),
            "otherFines": float(self.other_fines),
            "totalDue": float(self.total_due),
            "unpaidFeesCount": self.unpaid_fees_count,
        }


@dataclass(frozen=True)
class StatementSummary:
    total_assigned: Decimal
    total_paid: Decimal
    total_arrears: Decimal
    total_fines: Decimal
    overall_status: str

    @property
    def remaining_balance(self) -> Decimal:
        return max(ZERO, self.total_assigned + self.total_fines - self.total_paid)

    def to_dict(self) -> dict:
        return {
            "totalAssigned": float(self.total_assigned),
            "totalPaid": float(self.total_paid),
            "totalArrears": float(self.total_arrears),
            "totalFines": float(self.total_fines),
            "remainingBalance": float(self.remaining_balance),
            "overallStatus": self.overall_status,
        }
