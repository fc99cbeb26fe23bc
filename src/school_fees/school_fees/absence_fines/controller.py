from __future__ import annotations

from flask import Flask

from ..common.web import current_user, json_ok, login_required, payload, roles_required
from ..container import Container
from ..core.enums import Role


def register(app: Flask, container: Container) -> None:
    fines = container.absence_fine_service

    @app.route("/api/absence-fine/calculate", methods=["POST"], endpoint="absence_fine_calculate")
    @login_required
    def calculate():
        body = payload()
        result = fines.calculate(
            student_id=body.get("studentId"),
            year=body.get("year"),
            month=body.get("month"),
            absence_count=body.get("absenceCount"),
        )
        return json_ok(result)

    @app.route("/api/absence-fine/history/<int:student_id>", methods=["GET"], endpoint="absence_fine_history")
    @login_required
    def history(student_id: int):
        return json_ok(fines.history(actor=current_user(), student_id=student_id).to_dict())

    @app.route("/api/absence-fine/reset/<int:student_id>", methods=["PUT"], endpoint="absence_fine_reset")
    @roles_required(Role.ADMIN, Role.PRINCIPAL)
    def reset(student_id: int):
        tracking = fines.reset(actor=current_user(), student_id=student_id)
        return json_ok(
            {"student": tracking.student_id, "consecutiveMonthsWithExcessiveAbsences": tracking.consecutive_months},
            message="Consecutive absence counter reset successfully",
        )
