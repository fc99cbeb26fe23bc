from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Student:
    """Domain entity: the student fields the fee ledger reads."""

    student_id: int
    full_name: str
    roll_number: str
    class_name: str
    section: str
    admission_date: date
    monthly_fee: Decimal = Decimal("0")
    is_active: bool = True
    user_id: Optional[int] = None

    def summary(self) -> dict:
        return {
            "studentId": self.student_id,
            "name": self.full_name,
            "rollNumber": self.roll_number,
            "class": self.class_name,
            "section": self.section,
            "monthlyFee": float(self.monthly_fee),
        }
