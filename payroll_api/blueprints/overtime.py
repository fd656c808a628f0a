from __future__ import annotations
from decimal import Decimal, InvalidOperation
from typing import Dict, Any

from flask import Blueprint, request, current_app

from payroll_api.common.auth import requires_perms, current_actor
from payroll_api.common.http import ok, fail
from payroll_api.common.paging import paginate, parse_date, parse_int
from payroll_api.models.employee import Employee
from payroll_api.models.overtime import OvertimeRequest
from payroll_api.services import overtime as svc

bp = Blueprint("overtime", __name__, url_prefix="/api/v1/overtime")

OT_STATUSES = ("pending", "approved", "rejected")


def _monthly_hours() -> int:
    return int(current_app.config.get("PAYROLL_STANDARD_MONTHLY_HOURS", svc.STANDARD_MONTHLY_HOURS))

def _row(r: OvertimeRequest) -> Dict[str, Any]:
    return {
        "id": r.id,
        "employee_id": r.employee_id,
        "date": r.date.isoformat() if r.date else None,
        "start_time": r.start_time.strftime("%H:%M") if r.start_time else None,
        "end_time": r.end_time.strftime("%H:%M") if r.end_time else None,
        "duration_minutes": r.duration_minutes,
        "is_holiday": bool(r.is_holiday),
        "reason": r.reason,
        "status": r.status,
        "multiplier": float(r.multiplier) if r.multiplier is not None else None,
        "calculated_overtime_pay": float(r.calculated_overtime_pay) if r.calculated_overtime_pay is not None else None,
        "approved_by": r.approved_by,
        "approved_at": r.approved_at.isoformat() if r.approved_at else None,
        "rejection_reason": r.rejection_reason,
    }


@bp.post("/calculate")
@requires_perms("payroll.overtime.read")
def calculate():
    """
    Preview pricing without storing anything.
    Body: start_time, end_time, and either base_hourly_rate or monthly_salary;
    is_holiday explicitly or a date (weekend/public holiday detected).
    """
    j = request.get_json(silent=True) or {}
    try:
        if j.get("base_hourly_rate") is not None:
            rate = Decimal(str(j["base_hourly_rate"]))
        elif j.get("monthly_salary") is not None:
            rate = svc.hourly_rate(j["monthly_salary"], _monthly_hours())
        else:
            return fail("base_hourly_rate or monthly_salary is required", 422)
    except (InvalidOperation, ValueError):
        return fail("rate must be numeric", 422)

    d = parse_date(j.get("date"))
    if "is_holiday" in j:
        holiday = bool(j.get("is_holiday"))
    elif d:
        holiday = svc.is_rest_day(d)
    else:
        holiday = False
    policy = svc.resolve_overtime_policy(d) if d else svc.DEFAULT_RULES

    calc = svc.compute_overtime(j.get("start_time"), j.get("end_time"), rate, holiday, policy)
    if not calc.is_valid:
        return fail(calc.validation_message, 422, code="OVERTIME_INVALID", detail=calc.as_dict())
    return ok(calc.as_dict(), base_hourly_rate=float(rate), is_holiday=holiday)


@bp.post("")
@requires_perms("payroll.overtime.write")
def submit():
    j = request.get_json(silent=True) or {}
    emp_id = parse_int(j.get("employee_id"))
    d = parse_date(j.get("date"))
    if emp_id is None or d is None or not j.get("start_time") or not j.get("end_time"):
        return fail("employee_id, date, start_time, end_time are required", 422)
    if Employee.query.get(emp_id) is None:
        return fail("employee not found", 404)

    res = svc.submit_overtime(emp_id, d, j["start_time"], j["end_time"],
                              reason=(j.get("reason") or "").strip() or None,
                              monthly_hours=_monthly_hours())
    if not res.is_valid:
        return fail(res.message, 422, code="OVERTIME_INVALID", detail=res.calculation.as_dict())
    return ok(_row(res.request), 201, preview=res.calculation.as_dict(),
              week_total_hours=float(res.weekly.total_hours))


@bp.get("")
@requires_perms("payroll.overtime.read")
def list_requests():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in OT_STATUSES:
        return fail(f"status must be one of {', '.join(OT_STATUSES)}", 422)
    emp_id = parse_int(request.args.get("employee_id"))
    q = svc.list_requests(employee_id=emp_id, status=status,
                          d_from=parse_date(request.args.get("from")),
                          d_to=parse_date(request.args.get("to")))
    rows, meta = paginate(q)
    return ok([_row(r) for r in rows], **meta)


@bp.post("/<int:request_id>/approve")
@requires_perms("payroll.overtime.approve")
def approve(request_id: int):
    calc = svc.approve_overtime(request_id, current_actor(), monthly_hours=_monthly_hours())
    if not calc.is_valid:
        return fail(calc.validation_message, 422, code="OVERTIME_INVALID", detail=calc.as_dict())
    return ok(_row(OvertimeRequest.query.get(request_id)))


@bp.post("/<int:request_id>/reject")
@requires_perms("payroll.overtime.approve")
def reject(request_id: int):
    j = request.get_json(silent=True) or {}
    r = svc.reject_overtime(request_id, current_actor(), (j.get("reason") or "").strip() or None)
    return ok(_row(r))
