from __future__ import annotations
from datetime import date
from typing import Dict, Any

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms, current_actor
from payroll_api.common.http import ok, fail
from payroll_api.common.paging import parse_date
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.salary import EmployeeSalary
from payroll_api.services import salary as svc

bp = Blueprint("employee_salary", __name__, url_prefix="/api/v1/employees")


def _row(s: EmployeeSalary) -> Dict[str, Any]:
    out = {
        "id": s.id,
        "employee_id": s.employee_id,
        "effective_date": s.effective_date.isoformat() if s.effective_date else None,
        "is_active": bool(s.is_active),
        "ptkp_status": s.ptkp_status,
        "npwp": s.npwp,
        "created_by": s.created_by,
    }
    for f in svc.MONEY_FIELDS + svc.RATE_FIELDS:
        v = getattr(s, f)
        out[f] = float(v) if v is not None else None
    return out


@bp.get("/<int:emp_id>/salary")
@requires_perms("payroll.salary.read")
def salary_history(emp_id: int):
    Employee.query.get_or_404(emp_id)
    rows = svc.salary_history(emp_id)
    cur = next((r for r in rows if r.is_active), None)
    return ok([_row(r) for r in rows], current_id=cur.id if cur else None)


@bp.post("/<int:emp_id>/salary")
@requires_perms("payroll.salary.write")
def add_salary(emp_id: int):
    """Append a salary configuration; the previous one is deactivated."""
    Employee.query.get_or_404(emp_id)
    j = request.get_json(silent=True) or {}
    eff = parse_date(j.get("effective_date")) if j.get("effective_date") else date.today()
    if eff is None:
        return fail("effective_date must be YYYY-MM-DD", 422)
    row = svc.add_salary_config(emp_id, j, eff, created_by=current_actor())
    return ok(_row(row), 201)


@bp.get("/<int:emp_id>/salary/as-of")
@requires_perms("payroll.salary.read")
def salary_as_of(emp_id: int):
    Employee.query.get_or_404(emp_id)
    d = parse_date(request.args.get("date"))
    if d is None:
        return fail("date (YYYY-MM-DD) is required", 422)
    row = svc.salary_as_of(emp_id, d)
    if row is None:
        return fail(f"no salary configuration effective on {d.isoformat()}", 404)
    return ok(_row(row))
