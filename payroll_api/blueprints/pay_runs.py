from __future__ import annotations
from decimal import Decimal
from typing import Dict, Any

from flask import Blueprint, request, current_app

from payroll_api.common.auth import requires_perms, current_actor
from payroll_api.common.http import ok, fail
from payroll_api.common.paging import paginate, parse_int
from payroll_api.models.payroll.pay_run import PayrollRun, PayrollDetail, RUN_STATUSES
from payroll_api.services import payroll_run as svc

bp = Blueprint("pay_runs", __name__, url_prefix="/api/v1/payroll-runs")


# ---------- helpers ----------
def _flt(x):
    return float(x) if x is not None else None

def _iso(x):
    return x.isoformat() if x else None

def _run_settings() -> Dict[str, Any]:
    cfg = current_app.config
    return {
        "late_deduction_rate": Decimal(str(cfg.get("PAYROLL_LATE_DEDUCTION_RATE", 50000))),
        "batch_size": int(cfg.get("PAYROLL_BATCH_SIZE", svc.BATCH_SIZE)),
    }


# ---------- row serializers ----------
def _row_run(r: PayrollRun) -> Dict[str, Any]:
    return {
        "id": r.id,
        "month": r.month,
        "year": r.year,
        "period_start": _iso(r.period_start),
        "period_end": _iso(r.period_end),
        "status": r.status,
        "generating": bool(r.generating),
        "total_employees": r.total_employees,
        "total_gross_salary": _flt(r.total_gross_salary),
        "total_deductions": _flt(r.total_deductions),
        "total_net_salary": _flt(r.total_net_salary),
        "generated_by": r.generated_by,
        "generated_at": _iso(r.generated_at),
        "finalized_by": r.finalized_by,
        "finalized_at": _iso(r.finalized_at),
        "paid_at": _iso(r.paid_at),
        "cancelled_by": r.cancelled_by,
        "cancelled_at": _iso(r.cancelled_at),
    }

def _row_detail(x: PayrollDetail) -> Dict[str, Any]:
    return {
        "id": x.id,
        "payroll_run_id": x.payroll_run_id,
        "employee_id": x.employee_id,
        "employee_code": x.employee.code if x.employee else None,
        "employee_name": x.employee.full_name if x.employee else None,
        "attendance": {
            "working_days": x.working_days,
            "present_days": x.present_days,
            "late_days": x.late_days,
            "late_minutes": x.late_minutes,
            "absent_days": x.absent_days,
            "leave_days": x.leave_days,
            "overtime_hours": _flt(x.overtime_hours),
        },
        "earnings": {
            "base_salary": _flt(x.base_salary),
            "transport_allowance": _flt(x.transport_allowance),
            "meal_allowance": _flt(x.meal_allowance),
            "position_allowance": _flt(x.position_allowance),
            "housing_allowance": _flt(x.housing_allowance),
            "other_allowances": _flt(x.other_allowances),
            "total_allowances": _flt(x.total_allowances),
            "overtime_pay": _flt(x.overtime_pay),
        },
        "deductions": {
            "late_deduction": _flt(x.late_deduction),
            "bpjs_kesehatan_employee": _flt(x.bpjs_kesehatan_employee),
            "bpjs_tk_employee": _flt(x.bpjs_tk_employee),
            "pph21": _flt(x.pph21),
            "loan_deduction": _flt(x.loan_deduction),
            "other_deductions": _flt(x.other_deductions),
        },
        "employer": {
            "bpjs_kesehatan_employer": _flt(x.bpjs_kesehatan_employer),
            "bpjs_tk_employer": _flt(x.bpjs_tk_employer),
        },
        "tax": {
            "ptkp_status": x.ptkp_status,
            "ter_category": x.ter_category,
            "ter_rate": _flt(x.ter_rate),
            "resolution": x.tax_resolution,
        },
        "gross_salary": _flt(x.gross_salary),
        "total_deductions": _flt(x.total_deductions),
        "net_salary": _flt(x.net_salary),
        "payment_status": x.payment_status,
        "paid_at": _iso(x.paid_at),
        "slip_generated": bool(x.slip_generated),
    }


# ---------- routes ----------
@bp.post("")
@requires_perms("payroll.run.write")
def create_run():
    """
    Generate a DRAFT run for (month, year): one detail per active employee
    with a salary configuration. 409 if the period already has a live run.
    """
    j = request.get_json(silent=True) or {}
    month = parse_int(j.get("month"))
    year = parse_int(j.get("year"))
    if month is None or year is None:
        return fail("month and year are required integers", 422)

    run, report = svc.create_run(month, year, generated_by=current_actor(), **_run_settings())
    return ok(_row_run(run), 201, processed=report["processed"], skipped=report["skipped"])

@bp.get("")
@requires_perms("payroll.run.read")
def list_runs():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in RUN_STATUSES:
        return fail(f"status must be one of {', '.join(RUN_STATUSES)}", 422)
    year = None
    if request.args.get("year"):
        year = parse_int(request.args["year"])
        if year is None:
            return fail("year must be integer", 422)

    rows, meta = paginate(svc.list_runs(status=status, year=year))
    return ok([_row_run(r) for r in rows], **meta)

@bp.get("/<int:run_id>")
@requires_perms("payroll.run.read")
def get_run(run_id: int):
    r = PayrollRun.query.get_or_404(run_id)
    return ok(_row_run(r))

@bp.get("/<int:run_id>/details")
@requires_perms("payroll.run.read")
def list_details(run_id: int):
    PayrollRun.query.get_or_404(run_id)
    q = PayrollDetail.query.filter(PayrollDetail.payroll_run_id == run_id)
    if request.args.get("employee_id"):
        emp_id = parse_int(request.args["employee_id"])
        if emp_id is None:
            return fail("employee_id must be integer", 422)
        q = q.filter(PayrollDetail.employee_id == emp_id)
    rows, meta = paginate(q.order_by(PayrollDetail.employee_id.asc()))
    return ok([_row_detail(x) for x in rows], **meta)

@bp.post("/<int:run_id>/regenerate")
@requires_perms("payroll.run.write")
def regenerate_run(run_id: int):
    run, report = svc.regenerate_run(run_id, **_run_settings())
    return ok(_row_run(run), processed=report["processed"], skipped=report["skipped"])

@bp.post("/<int:run_id>/finalize")
@requires_perms("payroll.run.approve")
def finalize_run(run_id: int):
    return ok(_row_run(svc.finalize_run(run_id, actor=current_actor())))

@bp.post("/<int:run_id>/mark-paid")
@requires_perms("payroll.run.approve")
def mark_paid(run_id: int):
    return ok(_row_run(svc.mark_paid(run_id)))

@bp.post("/<int:run_id>/cancel")
@requires_perms("payroll.run.write")
def cancel_run(run_id: int):
    return ok(_row_run(svc.cancel_run(run_id, actor=current_actor())))

@bp.post("/<int:run_id>/slips-generated")
@requires_perms("payroll.slip.write")
def slips_generated(run_id: int):
    j = request.get_json(silent=True) or {}
    ids = j.get("employee_ids")
    if ids is not None:
        if not isinstance(ids, list) or any(parse_int(i) is None for i in ids):
            return fail("employee_ids must be a list of integers", 422)
        ids = [int(i) for i in ids]
    n = svc.mark_slips_generated(run_id, ids)
    return ok({"payroll_run_id": run_id, "updated": n})
