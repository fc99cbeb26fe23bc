from __future__ import annotations

import pytest

from src.school_fees.school_fees.core.exceptions import AuthorizationError, NotFoundError, ValidationError


def test_calculate_persists_and_reports(container, absence_fines):
    service = container.absence_fine_service
    service.calculate(student_id=1, year=2026, month=8, absence_count=5)
    data = service.calculate(student_id="1", year="2026", month="9", absence_count="4")

    assert data["fineAmount"] == 1000.0
    assert data["consecutiveMonthNumber"] == 2
    assert data["absenceCount"] == 4
    assert data["allowedAbsences"] == 3
    assert data["baseFine"] == 500.0
    assert "2nd consecutive month" in data["details"]
    assert [(e["year"], e["month"]) for e in data["monthlyHistory"]] == [(2026, 9), (2026, 8)]
    assert absence_fines.get(1).consecutive_months == 2


def test_calculate_preview_is_six_entries(container):
    service = container.absence_fine_service
    for month in range(1, 11):
        data = service.calculate(student_id=1, year=2026, month=month, absence_count=0)
    assert len(data["monthlyHistory"]) == 6
    assert data["monthlyHistory"][0]["month"] == 10


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(student_id=None, year=2026, month=1, absence_count=1),
        dict(student_id=1, year=2026, month=None, absence_count=1),
        dict(student_id=1, year=2026, month=1, absence_count=None),
        dict(student_id=1, year=2026, month=13, absence_count=1),
        dict(student_id=1, year=2026, month=1, absence_count=-2),
    ],
)
def test_calculate_validates(container, kwargs):
    with pytest.raises(ValidationError):
        container.absence_fine_service.calculate(**kwargs)


def test_calculate_unknown_student(container):
    with pytest.raises(NotFoundError):
        container.absence_fine_service.calculate(student_id=77, year=2026, month=1, absence_count=1)


def test_zero_absences_is_accepted(container):
    data = container.absence_fine_service.calculate(student_id=1, year=2026, month=1, absence_count=0)
    assert data["fineAmount"] == 0.0


def test_history_of_untracked_student_is_empty_default(container, admin):
    tracking = container.absence_fine_service.history(actor=admin, student_id=2)
    assert tracking.to_dict() == {
        "student": 2,
        "consecutiveMonthsWithExcessiveAbsences": 0,
        "lastExcessiveAbsenceMonth": None,
        "monthlyHistory": [],
    }


def test_student_cannot_read_someone_elses_history(container, student_user):
    with pytest.raises(AuthorizationError):
        container.absence_fine_service.history(actor=student_user, student_id=2)


def test_reset(container, absence_fines, admin, accountant):
    service = container.absence_fine_service
    with pytest.raises(NotFoundError):
        service.reset(actor=admin, student_id=1)

    service.calculate(student_id=1, year=2026, month=8, absence_count=6)
    with pytest.raises(AuthorizationError):
        service.reset(actor=accountant, student_id=1)

    cleared = service.reset(actor=admin, student_id=1)
    assert cleared.consecutive_months == 0
    assert absence_fines.get(1).last_excessive_absence_month is None
    assert len(absence_fines.get(1).history) == 1
