from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Optional

from ..common.datetime_utils import next_month_start
from ..core.constants import ABSENCE_HISTORY_LIMIT, ALLOWED_ABSENCES_PER_MONTH, BASE_ABSENCE_FINE


@dataclass(frozen=True)
class MonthlyAbsenceEntry:
    year: int
    month: int
    absence_count: int
    had_excessive_absences: bool
    fine_amount: Decimal
    consecutive_month_number: int

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "absenceCount": self.absence_count,
            "hadExcessiveAbsences": self.had_excessive_absences,
            "fineAmount": float(self.fine_amount),
            "consecutiveMonthNumber": self.consecutive_month_number,
        }


@dataclass(frozen=True)
class FineCalculation:
    fine_amount: Decimal
    consecutive_month_number: int
    should_reset_counter: bool


@dataclass(frozen=True)
class AbsenceFineTracking:
    """Per-student escalation state. History is most recent first."""

    student_id: int
    consecutive_months: int = 0
    last_excessive_absence_month: Optional[date] = None
    history: tuple[MonthlyAbsenceEntry, ...] = ()
    is_active: bool = True

    def reset(self) -> "AbsenceFineTracking":
        """Clear the streak; history is kept."""
        return replace(self, consecutive_months=0, last_excessive_absence_month=None)

    def to_dict(self) -> dict:
        return {
            "student": self.student_id,
            "consecutiveMonthsWithExcessiveAbsences": self.consecutive_months,
            "lastExcessiveAbsenceMonth": (
                self.last_excessive_absence_month.isoformat() if self.last_excessive_absence_month else None
            ),
            "monthlyHistory": [e.to_dict() for e in self.history],
        }


def calculate_fine_for_month(
    tracking: AbsenceFineTracking,
    year: int,
    month: int,
    absence_count: int,
) -> FineCalculation:
    """Fine for one month given the prior streak. Linear: the n-th consecutive month costs n x base."""
    if absence_count <= ALLOWED_ABSENCES_PER_MONTH:
        return FineCalculation(fine_amount=Decimal("0"), consecutive_month_number=0, should_reset_counter=True)

    number = 1
    last = tracking.last_excessive_absence_month
    if last is not None and next_month_start(last) == date(year, month, 1):
        number = tracking.consecutive_months + 1

    return FineCalculation(
        fine_amount=BASE_ABSENCE_FINE * number,
        consecutive_month_number=number,
        should_reset_counter=False,
    )


def apply_month(
    tracking: AbsenceFineTracking,
    year: int,
    month: int,
    absence_count: int,
    calculation: FineCalculation,
) -> AbsenceFineTracking:
    entry = MonthlyAbsenceEntry(
        year=year,
        month=month,
        absence_count=absence_count,
        had_excessive_absences=absence_count > ALLOWED_ABSENCES_PER_MONTH,
        fine_amount=calculation.fine_amount,
        consecutive_month_number=calculation.consecutive_month_number,
    )
    history = [e for e in tracking.history if (e.year, e.month) != (year, month)]
    history.append(entry)
    history.sort(key=lambda e: (e.year, e.month), reverse=True)

    if calculation.should_reset_counter:
        consecutive, last = 0, None
    else:
        consecutive, last = calculation.consecutive_month_number, date(year, month, 1)

    return replace(
        tracking,
        consecutive_months=consecutive,
        last_excessive_absence_month=last,
        history=tuple(history[:ABSENCE_HISTORY_LIMIT]),
    )


def record_month(
    tracking: AbsenceFineTracking,
    year: int,
    month: int,
    absence_count: int,
) -> tuple[AbsenceFineTracking, FineCalculation]:
    calculation = calculate_fine_for_month(tracking, year, month, absence_count)
    return apply_month(tracking, year, month, absence_count, calculation), calculation


def ordinal_suffix(number: int) -> str:
    if number % 10 == 1 and number % 100 != 11:
        return "st"
    if number % 10 == 2 and number % 100 != 12:
        return "nd"
    if number % 10 == 3 and number % 100 != 13:
        return "rd"
    return "th"


def _amount(value: Decimal) -> str:
    return f"{value:.0f}" if value == value.to_integral_value() else f"{value:.2f}"


def fine_details(absence_count: int, calculation: FineCalculation) -> str:
    if absence_count <= ALLOWED_ABSENCES_PER_MONTH:
        return f"{absence_count} absences (within allowed limit of {ALLOWED_ABSENCES_PER_MONTH}) - No fine"
    n = calculation.consecutive_month_number
    if n == 1:
        return f"{absence_count} absences (exceeds limit) - Base fine of {_amount(BASE_ABSENCE_FINE)} applied"
    return (
        f"{absence_count} absences (exceeds limit) - {n}{ordinal_suffix(n)} consecutive month with excessive "
        f"absences - Fine: {_amount(BASE_ABSENCE_FINE)} × {n} = {_amount(calculation.fine_amount)}"
    )
