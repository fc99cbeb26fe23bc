from __future__ import annotations

import calendar
from datetime import date, datetime


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now()


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def month_end(value: date) -> date:
    """Normalize any date to the last calendar day of its month."""
    if isinstance(value, datetime):
        value = value.date()
    return last_day_of_month(value.year, value.month)


def month_start(value: date) -> date:
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def next_month_start(value: date) -> date:
    if value.month == 12:
        return date(value.year + 1, 1, 1)
    return date(value.year, value.month + 1, 1)


def same_month(a: date, b: date) -> bool:
    return a.year == b.year and a.month == b.month


def month_label(value: date) -> str:
    """'September 2026' style label used in arrears breakdowns."""
    return f"{calendar.month_name[value.month]} {value.year}"
