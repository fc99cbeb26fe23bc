from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User roles used for authorization."""

    ADMIN = "admin"
    PRINCIPAL = "principal"
    ACCOUNTANT = "accountant"
    TEACHER = "teacher"
    STAFF = "staff"
    STUDENT = "student"


class FeeType(str, Enum):
    TUITION = "tuition"
    EXAM = "exam"
    TRANSPORT = "transport"
    LIBRARY = "library"
    LABORATORY = "laboratory"
    OTHER = "other"


class FeeStatus(str, Enum):
    """Derived payment state of a fee record. Never set by callers."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    PAID = "paid"


OUTSTANDING_STATUSES = (FeeStatus.UNPAID, FeeStatus.PARTIAL, FeeStatus.OVERDUE)


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    ONLINE = "online"
    BANK_TRANSFER = "bank transfer"
    OTHER = "other"
