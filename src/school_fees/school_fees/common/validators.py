from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"Please provide {field_name}")
    return str(value).strip()


def require_int(value: Any, field_name: str) -> int:
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"Please provide {field_name}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")


def require_month(value: Any, field_name: str = "month") -> int:
    month = require_int(value, field_name)
    if not 1 <= month <= 12:
        raise ValidationError(f"{field_name} must be between 1 and 12")
    return month


def require_year(value: Any, field_name: str = "year") -> int:
    year = require_int(value, field_name)
    if not 1900 <= year <= 9999:
        raise ValidationError(f"{field_name} is not a valid year")
    return year


def to_money(value: Any, field_name: str, *, default: Optional[Decimal] = None) -> Decimal:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"Please provide {field_name}")
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a number")
    return amount


def require_non_negative(value: Any, field_name: str, *, default: Optional[Decimal] = None) -> Decimal:
    amount = to_money(value, field_name, default=default)
    if amount < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return amount


def require_positive(value: Any, field_name: str) -> Decimal:
    amount = to_money(value, field_name)
    if amount <= 0:
        raise ValidationError(f"{field_name} must be greater than zero")
    return amount
