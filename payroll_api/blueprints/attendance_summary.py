# payroll_api/blueprints/attendance_summary.py
from __future__ import annotations

from decimal import Decimal
from typing import Dict, Any, Iterable, List, Optional

from flask import Blueprint, request, current_app

from payroll_api.common.auth import requires_perms
from payroll_api.common.http import ok, fail
from payroll_api.common.paging import paginate, parse_int, period_errors
from payroll_api.models.payroll.summary import MonthlyAttendanceSummary
from payroll_api.services import attendance_summary as svc

bp = Blueprint("attendance_summary", __name__, url_prefix="/api/v1/attendance-summaries")


# ---------------- helpers ----------------
def _period(src) -> tuple[Optional[int], Optional[int], Optional[str]]:
    month = parse_int(src.get("month"))
    year = parse_int(src.get("year"))
    if month is None or year is None:
        return None, None, "month and year are required integers"
    errors = period_errors(month, year)
    if errors:
        return None, None, "; ".join(e["message"] for e in errors)
    return month, year, None


def _emp_ids(raw: Iterable | None) -> Optional[List[int]]:
    """
    Normalise and de-duplicate employee IDs. Accepts a list or "1,2,3".
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = [p.strip() for p in raw.split(",") if p.strip()]
    uniq: List[int] = []
    for e in raw:
        eid = parse_int(e)
        if eid is not None and eid not in uniq:
            uniq.append(eid)
    return uniq or None


def _row(s: MonthlyAttendanceSummary) -> Dict[str, Any]:
    return {
        "id": s.id,
        "employee_id": s.employee_id,
        "month": s.month,
        "year": s.year,
        "total_working_days": s.total_working_days,
        "total_present": s.total_present,
        "total_late": s.total_late,
        "total_late_minutes": s.total_late_minutes,
        "total_absent": s.total_absent,
        "total_leave_days": s.total_leave_days,
        "total_overtime_hours": float(s.total_overtime_hours or 0),
        "total_overtime_pay": float(s.total_overtime_pay or 0),
        "deductions": float(s.deductions or 0),
        "generated_at": s.generated_at.isoformat() if s.generated_at else None,
    }


# ---------------- routes ----------------
@bp.post("/generate")
@requires_perms("payroll.attendance.write")
def generate():
    """
    Recompute and upsert summaries for (month, year).
    Body: {"month": 3, "year": 2025, "employee_ids": [1, 2]?}
    """
    j = request.get_json(silent=True) or {}
    month, year, err = _period(j)
    if err:
        return fail(err, 422)

    rate = Decimal(str(current_app.config.get("PAYROLL_LATE_DEDUCTION_RATE", svc.LATE_DEDUCTION_RATE)))
    rows = svc.generate_all_summaries(month, year, rate, employee_ids=_emp_ids(j.get("employee_ids")))
    return ok([_row(s) for s in rows], month=month, year=year, count=len(rows))


@bp.get("")
@requires_perms("payroll.attendance.read")
def list_summaries():
    month, year, err = _period(request.args)
    if err:
        return fail(err, 422)
    emp_id = None
    if request.args.get("employee_id"):
        emp_id = parse_int(request.args["employee_id"])
        if emp_id is None:
            return fail("employee_id must be integer", 422)

    rows, meta = paginate(svc.list_summaries(month, year, emp_id))
    return ok([_row(s) for s in rows], **meta)
