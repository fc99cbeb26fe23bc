from __future__ import annotations

import logging
from typing import Any

from ..common.validators import require_int, require_month, require_year
from ..core.constants import ABSENCE_HISTORY_PREVIEW, ALLOWED_ABSENCES_PER_MONTH, BASE_ABSENCE_FINE
from ..core.enums import Role
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..students.repository import StudentRepository
from ..users.service import SessionUser
from .model import AbsenceFineTracking, fine_details, record_month
from .repository import AbsenceFineRepository

logger = logging.getLogger(__name__)


class AbsenceFineService:
    """Use cases: escalating absence fines per student and month."""

    def __init__(self, tracking: AbsenceFineRepository, students: StudentRepository):
        self._tracking = tracking
        self._students = students

    def _require_student_id(self, student_id: Any) -> int:
        sid = require_int(student_id, "studentId")
        if not self._students.get_by_id(sid):
            raise NotFoundError("Student not found")
        return sid

    def calculate(self, *, student_id: Any, year: Any, month: Any, absence_count: Any) -> dict:
        if student_id in (None, "") or year in (None, "") or month in (None, "") or absence_count in (None, ""):
            raise ValidationError("Please provide studentId, year, month, and absenceCount")
        year_n = require_year(year)
        month_n = require_month(month)
        count = require_int(absence_count, "absenceCount")
        if count < 0:
            raise ValidationError("absenceCount cannot be negative")
        sid = self._require_student_id(student_id)

        current = self._tracking.get(sid) or AbsenceFineTracking(student_id=sid)
        updated, calculation = record_month(current, year_n, month_n, count)
        self._tracking.save(updated)

        if calculation.should_reset_counter and current.consecutive_months:
            logger.info("Absence streak for student %s reset at %d/%d", sid, month_n, year_n)

        return {
            "fineAmount": float(calculation.fine_amount),
            "consecutiveMonthNumber": calculation.consecutive_month_number,
            "absenceCount": count,
            "allowedAbsences": ALLOWED_ABSENCES_PER_MONTH,
            "baseFine": float(BASE_ABSENCE_FINE),
            "details": fine_details(count, calculation),
            "monthlyHistory": [e.to_dict() for e in updated.history[:ABSENCE_HISTORY_PREVIEW]],
        }

    def history(self, *, actor: SessionUser, student_id: Any) -> AbsenceFineTracking:
        sid = self._require_student_id(student_id)
        if actor.role == Role.STUDENT and actor.student_id != sid:
            raise AuthorizationError("Students can only view their own absence history")
        return self._tracking.get(sid) or AbsenceFineTracking(student_id=sid)

    def reset(self, *, actor: SessionUser, student_id: Any) -> AbsenceFineTracking:
        if actor.role not in {Role.ADMIN, Role.PRINCIPAL}:
            raise AuthorizationError("Only admin or principal can reset the absence counter")
        sid = self._require_student_id(student_id)
        current = self._tracking.get(sid)
        if not current:
            raise NotFoundError("No absence tracking record found for this student")
        cleared = current.reset()
        self._tracking.save(cleared)
        logger.info("Absence counter for student %s reset by user %s", sid, actor.user_id)
        return cleared
