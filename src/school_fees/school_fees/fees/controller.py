from __future__ import annotations

from flask import Flask, request

from ..common.web import current_user, json_ok, login_required, payload, roles_required
from ..container import Container
from ..core.enums import Role

_FINANCE = (Role.ADMIN, Role.PRINCIPAL, Role.ACCOUNTANT)
_READERS = (Role.ADMIN, Role.PRINCIPAL, Role.ACCOUNTANT, Role.STUDENT)
_SUPERVISORS = (Role.ADMIN, Role.PRINCIPAL)


def register(app: Flask, container: Container) -> None:
    fees = container.fee_service

    @app.route("/api/fees", methods=["GET"], endpoint="list_fees")
    @login_required
    def list_fees():
        args = request.args
        student_ids = args.getlist("studentId") or args.getlist("studentIds")
        result = fees.list_fees(
            actor=current_user(),
            student_ids=student_ids,
            month=args.get("month"),
            year=args.get("year"),
            status=args.get("status"),
            fee_type=args.get("feeType"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
        return json_ok(
            [r.to_dict() for r in result.records],
            count=len(result.records),
            total=result.total,
            pagination=result.pagination(),
        )

    @app.route("/api/fees", methods=["POST"], endpoint="create_fee")
    @roles_required(*_FINANCE)
    def create_fee():
        body = payload()
        base_amount = body.get("baseAmount")
        if base_amount in (None, ""):
            base_amount = body.get("amount")
        records = fees.create_fee(
            actor=current_user(),
            student_id=body.get("studentId"),
            fee_type=body.get("feeType"),
            due_date=body.get("dueDate"),
            base_amount=base_amount,
            absence_fine=body.get("absenceFine"),
            other_adjustments=body.get("otherAdjustments"),
            remarks=body.get("remarks"),
        )
        data = [r.to_dict() for r in records]
        return json_ok(data if len(data) > 1 else data[0], status=201)

    @app.route("/api/fees/<int:fee_id>", methods=["GET"], endpoint="get_fee")
    @roles_required(*_READERS)
    def get_fee(fee_id: int):
        return json_ok(fees.get_fee(actor=current_user(), fee_id=fee_id).to_dict())

    @app.route("/api/fees/<int:fee_id>", methods=["PUT"], endpoint="update_fee")
    @login_required
    def update_fee(fee_id: int):
        body = payload()
        record = fees.update_fee(
            actor=current_user(),
            fee_id=fee_id,
            base_amount=body.get("baseAmount", body.get("amount")),
            absence_fine=body.get("absenceFine"),
            other_adjustments=body.get("otherAdjustments"),
            paid_amount=body.get("paidAmount"),
            due_date=body.get("dueDate"),
            payment_method=body.get("paymentMethod"),
            transaction_id=body.get("transactionId"),
            remarks=body.get("remarks"),
            version=body.get("version"),
        )
        return json_ok(record.to_dict())

    @app.route("/api/fees/<int:fee_id>", methods=["DELETE"], endpoint="delete_fee")
    @roles_required(*_SUPERVISORS)
    def delete_fee(fee_id: int):
        fees.delete_fee(actor=current_user(), fee_id=fee_id)
        return json_ok({}, message="Fee record deleted")

    @app.route("/api/fees/arrears/<int:student_id>", methods=["GET"], endpoint="fee_arrears")
    @roles_required(*_READERS)
    def arrears(student_id: int):
        return json_ok(fees.get_arrears(actor=current_user(), student_id=student_id).to_dict())

    @app.route("/api/fees/history/<int:student_id>", methods=["GET"], endpoint="fee_history")
    @roles_required(*_READERS)
    def history(student_id: int):
        result = fees.get_history(
            actor=current_user(),
            student_id=student_id,
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
        )
        return json_ok(
            {
                "student": result["student"].summary(),
                "fees": [r.to_dict() for r in result["records"]],
                "arrears": result["arrears"].to_dict(),
            }
        )

    @app.route("/api/fees/statement/<int:student_id>", methods=["GET"], endpoint="fee_statement")
    @roles_required(*_READERS)
    def statement(student_id: int):
        result = fees.get_statement(actor=current_user(), student_id=student_id)
        return json_ok(
            {
                "student": result["student"].summary(),
                "fees": [r.to_dict() for r in result["records"]],
                "summary": result["summary"].to_dict(),
            }
        )

    @app.route("/api/fees/student-aggregate/<int:student_id>", methods=["GET"], endpoint="fee_student_aggregate")
    @roles_required(*_FINANCE)
    def student_aggregate(student_id: int):
        return json_ok(fees.get_student_aggregate(actor=current_user(), student_id=student_id).to_dict())

    @app.route(
        "/api/fees/process-aggregate-payment/<int:student_id>",
        methods=["PUT"],
        endpoint="fee_aggregate_payment",
    )
    @roles_required(*_FINANCE)
    def aggregate_payment(student_id: int):
        body = payload()
        result = fees.process_aggregate_payment(
            actor=current_user(),
            student_id=student_id,
            paid_amount=body.get("paidAmount"),
            payment_method=body.get("paymentMethod"),
            transaction_id=body.get("transactionId"),
            remarks=body.get("remarks"),
            absence_fine=body.get("absenceFine"),
            other_adjustments=body.get("otherAdjustments"),
        )
        return json_ok(result.to_dict(), message="Payment processed")

    @app.route("/api/fees/generate-monthly", methods=["POST"], endpoint="fee_generate_monthly")
    @roles_required(*_SUPERVISORS)
    def generate_monthly():
        body = payload()
        result = fees.generate_monthly(
            actor=current_user(),
            month=body.get("month"),
            year=body.get("year"),
            fee_amount=body.get("feeAmount"),
        )
        return json_ok(
            result.to_dict(),
            message=f"Generated fees for {result.month}/{result.year}: {result.created} created, {result.updated} existing",
        )

    @app.route("/api/fees/cleanup-orphaned", methods=["DELETE"], endpoint="fee_cleanup_orphaned")
    @roles_required(*_SUPERVISORS)
    def cleanup_orphaned():
        removed = fees.cleanup_orphaned(actor=current_user())
        return json_ok(
            {"deletedCount": len(removed), "deletedIds": removed},
            message=f"Removed {len(removed)} orphaned fee record(s)",
        )

    @app.route("/api/fees/fix-due-dates", methods=["POST"], endpoint="fee_fix_due_dates")
    @roles_required(*_SUPERVISORS)
    def fix_due_dates():
        updated, skipped = fees.fix_due_dates(actor=current_user())
        return json_ok({"updated": updated, "skipped": skipped})

    @app.route("/api/fee-receipts/generate/<int:fee_id>", methods=["GET"], endpoint="fee_receipt")
    @roles_required(*_READERS)
    def generate_receipt(fee_id: int):
        return json_ok(fees.issue_receipt(actor=current_user(), fee_id=fee_id).to_dict())
