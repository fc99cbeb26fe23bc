from __future__ import annotations

import logging
import random
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from ..common.datetime_utils import last_day_of_month, month_label, now_local, parse_iso_date
from ..common.validators import require_int, require_month, require_non_negative, require_positive, require_year
from ..core.constants import BUNDLED_FEE_TYPES, DEFAULT_MONTHLY_FEE, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from ..core.enums import FeeStatus, FeeType, PaymentMethod, Role
from ..core.exceptions import AuthorizationError, ConcurrencyError, NotFoundError, ValidationError
from ..students.model import Student
from ..students.repository import StudentRepository
from ..users.service import SessionUser
from .allocator import most_recent, plan_allocation
from .calculator import aggregate_outstanding, calculate_arrears, summarize_statement
from .model import (
    AggregatedFees,
    Allocation,
    ArrearsReport,
    FeePage,
    FeeQuery,
    FeeRecord,
    GenerationResult,
    PaymentResult,
)
from .repository import FeeRepository

logger = logging.getLogger(__name__)

_SUPERVISORS = {Role.ADMIN, Role.PRINCIPAL}


def _parse_fee_type(value: Any) -> FeeType:
    try:
        return FeeType(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown feeType '{value}'")


def _parse_status(value: Any) -> FeeStatus:
    try:
        return FeeStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown status '{value}'")


def _parse_payment_method(value: Any) -> Optional[PaymentMethod]:
    if value is None or value == "":
        return None
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown paymentMethod '{value}'")


def _parse_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value or "").strip()[:10])
    except ValueError:
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)")


def _optional_text(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ""
    return text or None


def _optional_money(value: Any, field_name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return require_non_negative(value, field_name)


class FeeService:
    """Use cases over the fee ledger: records, arrears, payments and monthly generation."""

    def __init__(
        self,
        fees: FeeRepository,
        students: StudentRepository,
        *,
        clock: Callable[[], datetime] = now_local,
        default_monthly_fee: Decimal = DEFAULT_MONTHLY_FEE,
    ):
        self._fees = fees
        self._students = students
        self._clock = clock
        self._default_monthly_fee = Decimal(default_monthly_fee)

    # ---- access helpers ----

    def _require_student(self, student_id: Any) -> Student:
        sid = require_int(student_id, "studentId")
        student = self._students.get_by_id(sid)
        if not student:
            raise NotFoundError(f"Student {sid} not found")
        return student

    @staticmethod
    def _ensure_can_view(actor: SessionUser, student_id: int) -> None:
        if actor.role == Role.STUDENT and actor.student_id != int(student_id):
            raise AuthorizationError("Students can only view their own fee records")

    @staticmethod
    def _ensure_supervisor(actor: SessionUser, action: str) -> None:
        if actor.role not in _SUPERVISORS:
            raise AuthorizationError(f"Only admin or principal can {action}")

    @staticmethod
    def _ensure_can_edit(actor: SessionUser, record: FeeRecord) -> None:
        if actor.role in _SUPERVISORS:
            return
        if record.recorded_by is not None and record.recorded_by == actor.user_id:
            return
        raise AuthorizationError("Only the user who recorded this fee, an admin or the principal can change it")

    def _get(self, fee_id: Any) -> FeeRecord:
        fid = require_int(fee_id, "fee id")
        record = self._fees.get_by_id(fid)
        if not record:
            raise NotFoundError(f"Fee record {fid} not found")
        return record

    # ---- records ----

    def list_fees(
        self,
        *,
        actor: SessionUser,
        student_ids: Iterable[Any] = (),
        month: Any = None,
        year: Any = None,
        status: Any = None,
        fee_type: Any = None,
        page: Any = None,
        limit: Any = None,
    ) -> FeePage:
        page_n = require_int(page, "page") if page not in (None, "") else 1
        limit_n = require_int(limit, "limit") if limit not in (None, "") else DEFAULT_PAGE_LIMIT
        if page_n < 1:
            raise ValidationError("page must be 1 or greater")
        if not 1 <= limit_n <= MAX_PAGE_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")

        ids = tuple(require_int(s, "studentId") for s in student_ids if s not in (None, ""))
        if actor.role == Role.STUDENT:
            if actor.student_id is None:
                return FeePage(records=[], total=0, page=page_n, limit=limit_n)
            ids = (actor.student_id,)

        month_n = year_n = None
        if month not in (None, "") and year not in (None, ""):
            month_n = require_month(month)
            year_n = require_year(year)

        query = FeeQuery(
            student_ids=ids,
            month=month_n,
            year=year_n,
            status=_parse_status(status) if status not in (None, "") else None,
            fee_type=_parse_fee_type(fee_type) if fee_type not in (None, "") else None,
            page=page_n,
            limit=limit_n,
        )
        return self._fees.search(query)

    def get_fee(self, *, actor: SessionUser, fee_id: Any) -> FeeRecord:
        record = self._get(fee_id)
        self._ensure_can_view(actor, record.student_id)
        return record

    def create_fee(
        self,
        *,
        actor: SessionUser,
        student_id: Any,
        fee_type: Any,
        due_date: Any,
        base_amount: Any,
        absence_fine: Any = None,
        other_adjustments: Any = None,
        remarks: Any = None,
    ) -> list[FeeRecord]:
        """Create the charge, or update the one already on file for that student, type and month.

        feeType "all" creates (or updates) tuition and exam together.
        """
        student = self._require_student(student_id)
        raw_type = str(fee_type or "").strip().lower()
        if not raw_type:
            raise ValidationError("Please provide feeType")
        types = [FeeType(t) for t in BUNDLED_FEE_TYPES] if raw_type == "all" else [_parse_fee_type(raw_type)]

        if due_date in (None, ""):
            raise ValidationError("Please provide dueDate")
        period = _parse_date(due_date, "dueDate")
        base = require_non_negative(base_amount, "baseAmount")
        fine = _optional_money(absence_fine, "absenceFine")
        adjustments = _optional_money(other_adjustments, "otherAdjustments")
        note = _optional_text(remarks)
        now = self._clock()

        saved: list[FeeRecord] = []
        for t in types:
            existing = self._fees.find_for_period(student_id=student.student_id, fee_type=t, period_due_date=period)
            if existing:
                changes: dict = {"base_amount": base, "recorded_by": actor.user_id}
                if fine is not None:
                    changes["absence_fine"] = fine
                if adjustments is not None:
                    changes["other_adjustments"] = adjustments
                if note is not None:
                    changes["remarks"] = note
                changed = existing.with_changes(now=now, **changes)
                saved.append(self._fees.update(changed))
                continue
            record = FeeRecord.build(
                student_id=student.student_id,
                fee_type=t,
                period_due_date=period,
                base_amount=base,
                absence_fine=fine if fine is not None else Decimal("0"),
                other_adjustments=adjustments if adjustments is not None else Decimal("0"),
                now=now,
                remarks=note,
                recorded_by=actor.user_id,
            )
            saved.append(self._fees.create(record))
        return saved

    def update_fee(
        self,
        *,
        actor: SessionUser,
        fee_id: Any,
        base_amount: Any = None,
        absence_fine: Any = None,
        other_adjustments: Any = None,
        paid_amount: Any = None,
        due_date: Any = None,
        payment_method: Any = None,
        transaction_id: Any = None,
        remarks: Any = None,
        version: Any = None,
    ) -> FeeRecord:
        record = self._get(fee_id)
        self._ensure_can_edit(actor, record)
        if version not in (None, "") and require_int(version, "version") != record.version:
            raise ConcurrencyError(f"Fee record {record.fee_id} was modified by another request, reload and retry")

        changes: dict = {}
        for name, raw in (
            ("base_amount", base_amount),
            ("absence_fine", absence_fine),
            ("other_adjustments", other_adjustments),
            ("paid_amount", paid_amount),
        ):
            value = _optional_money(raw, name)
            if value is not None:
                changes[name] = value
        if due_date not in (None, ""):
            changes["period_due_date"] = _parse_date(due_date, "dueDate")
        method = _parse_payment_method(payment_method)
        if method is not None:
            changes["payment_method"] = method
        if transaction_id is not None:
            changes["transaction_id"] = _optional_text(transaction_id)
        if remarks is not None:
            changes["remarks"] = _optional_text(remarks)
        if not changes:
            raise ValidationError("Nothing to update")

        return self._fees.update(record.with_changes(now=self._clock(), **changes))

    def delete_fee(self, *, actor: SessionUser, fee_id: Any) -> None:
        self._ensure_supervisor(actor, "delete fee records")
        record = self._get(fee_id)
        if not self._fees.delete(record.fee_id):
            raise NotFoundError(f"Fee record {record.fee_id} not found")
        logger.info("Fee %s deleted by user %s", record.fee_id, actor.user_id)

    # ---- projections ----

    def get_arrears(self, *, actor: SessionUser, student_id: Any) -> ArrearsReport:
        student = self._require_student(student_id)
        self._ensure_can_view(actor, student.student_id)
        records = self._fees.list_for_student(student.student_id)
        return calculate_arrears(records, today=self._clock().date(), admission_date=student.admission_date)

    def get_student_aggregate(self, *, actor: SessionUser, student_id: Any) -> AggregatedFees:
        student = self._require_student(student_id)
        self._ensure_can_view(actor, student.student_id)
        outstanding = self._fees.list_outstanding(student.student_id)
        if not outstanding:
            raise NotFoundError("No unpaid fees found for this student")
        return aggregate_outstanding(outstanding, student_id=student.student_id, today=self._clock().date())

    def get_history(
        self,
        *,
        actor: SessionUser,
        student_id: Any,
        start_date: Any = None,
        end_date: Any = None,
    ) -> dict:
        student = self._require_student(student_id)
        self._ensure_can_view(actor, student.student_id)
        due_from = _parse_date(start_date, "startDate") if start_date not in (None, "") else None
        due_to = _parse_date(end_date, "endDate") if end_date not in (None, "") else None
        if due_from and due_to and due_to < due_from:
            raise ValidationError("endDate must be on or after startDate")

        records = self._fees.list_for_student(student.student_id, due_from=due_from, due_to=due_to, newest_first=True)
        arrears = calculate_arrears(
            self._fees.list_for_student(student.student_id),
            today=self._clock().date(),
            admission_date=student.admission_date,
        )
        return {"student": student, "records": list(records), "arrears": arrears}

    def get_statement(self, *, actor: SessionUser, student_id: Any) -> dict:
        student = self._require_student(student_id)
        self._ensure_can_view(actor, student.student_id)
        records = list(self._fees.list_for_student(student.student_id))
        summary = summarize_statement(records, today=self._clock().date())
        return {"student": student, "records": records, "summary": summary}

    # ---- payments ----

    def process_aggregate_payment(
        self,
        *,
        actor: SessionUser,
        student_id: Any,
        paid_amount: Any,
        payment_method: Any = None,
        transaction_id: Any = None,
        remarks: Any = None,
        absence_fine: Any = None,
        other_adjustments: Any = None,
    ) -> PaymentResult:
        """Apply one payment across the student's outstanding fees, oldest first.

        Fines and adjustments, when given, land on the most recent outstanding
        fee before any money is allocated. The whole sequence runs under the
        student's ledger lock.
        """
        payment = require_positive(paid_amount, "paidAmount")
        method = _parse_payment_method(payment_method)
        txn = _optional_text(transaction_id)
        note = _optional_text(remarks)
        fine = _optional_money(absence_fine, "absenceFine")
        adjustments = _optional_money(other_adjustments, "otherAdjustments")
        student = self._require_student(student_id)
        now = self._clock()

        with self._fees.student_ledger(student.student_id) as ledger:
            outstanding = ledger.outstanding()
            if not outstanding:
                raise NotFoundError("No unpaid fees found for this student")

            if fine is not None or adjustments is not None:
                latest = most_recent(outstanding)
                ledger.save(latest.with_adjustments(now=now, absence_fine=fine, other_adjustments=adjustments))
                outstanding = ledger.outstanding()

            plan, leftover = plan_allocation(outstanding, payment)
            allocations: list[Allocation] = []
            for record, applied in plan:
                paid = record.with_payment(
                    applied,
                    now=now,
                    payment_method=method,
                    transaction_id=txn,
                    remarks=note,
                    recorded_by=actor.user_id,
                )
                saved = ledger.save(paid)
                allocations.append(Allocation(fee_id=saved.fee_id, applied=applied))

        logger.info(
            "Payment of %s for student %s spread over %d fee(s), %s left over",
            payment,
            student.student_id,
            len(allocations),
            leftover,
        )
        return PaymentResult(allocations=allocations, remaining_payment=leftover)

    # ---- batch / maintenance ----

    def generate_monthly(
        self,
        *,
        actor: SessionUser,
        month: Any = None,
        year: Any = None,
        fee_amount: Any = None,
    ) -> GenerationResult:
        self._ensure_supervisor(actor, "generate monthly fees")
        now = self._clock()
        month_n = require_month(month) if month not in (None, "") else now.month
        year_n = require_year(year) if year not in (None, "") else now.year
        fallback = require_non_negative(fee_amount, "feeAmount", default=self._default_monthly_fee)
        due = last_day_of_month(year_n, month_n)
        label = month_label(due)

        students = list(self._students.list_active())
        created = 0
        updated = 0
        errors: list[dict] = []
        for student in students:
            try:
                base = student.monthly_fee if student.monthly_fee > 0 else fallback
                record = FeeRecord.build(
                    student_id=student.student_id,
                    fee_type=FeeType.TUITION,
                    period_due_date=due,
                    base_amount=base,
                    now=now,
                    remarks=f"Monthly fee for {label}",
                    recorded_by=actor.user_id,
                )
                if self._fees.create_if_absent(record):
                    created += 1
                else:
                    updated += 1
            except Exception as e:
                logger.warning("Monthly fee for student %s (%s) failed: %s", student.student_id, label, e)
                errors.append({"studentId": student.student_id, "error": str(e)})

        logger.info(
            "Generated fees for %s: created=%d existing=%d errors=%d", label, created, updated, len(errors)
        )
        return GenerationResult(
            month=month_n,
            year=year_n,
            created=created,
            updated=updated,
            errors=errors,
            total_students=len(students),
        )

    def cleanup_orphaned(self, *, actor: SessionUser) -> list[int]:
        self._ensure_supervisor(actor, "clean up orphaned fees")
        removed = self._fees.delete_orphaned()
        logger.info("Removed %d orphaned fee record(s)", len(removed))
        return removed

    def fix_due_dates(self, *, actor: SessionUser) -> tuple[int, int]:
        self._ensure_supervisor(actor, "repair fee due dates")
        updated, skipped = self._fees.repair_all()
        logger.info("Due date repair: updated=%d skipped=%d", updated, skipped)
        return updated, skipped

    def issue_receipt(self, *, actor: SessionUser, fee_id: Any) -> FeeRecord:
        record = self._get(fee_id)
        self._ensure_can_view(actor, record.student_id)
        if record.receipt_number:
            return record
        now = self._clock()
        number = f"RCPT-{int(now.timestamp() * 1000)}-{random.randint(0, 999)}"
        return self._fees.update(record.with_receipt_number(number, now=now))
