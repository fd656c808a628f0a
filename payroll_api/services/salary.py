# payroll_api/services/salary.py
from __future__ import annotations

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from payroll_api.extensions import db
from payroll_api.common.errors import ValidationFailed
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.salary import EmployeeSalary

log = logging.getLogger(__name__)

PTKP_RE = re.compile(r"^(TK|K)/[0-3]$")

MONEY_FIELDS = ("base_salary",) + EmployeeSalary.ALLOWANCE_FIELDS
RATE_FIELDS = (
    "bpjs_kesehatan_employee_rate",
    "bpjs_kesehatan_employer_rate",
    "bpjs_tk_employee_rate",
    "bpjs_tk_employer_rate",
)


def _dec(x) -> Optional[Decimal]:
    if x is None or x == "":
        return None
    try:
        return Decimal(str(x))
    except (InvalidOperation, ValueError):
        return None


def validate_salary_payload(j: Dict[str, Any]) -> tuple[Dict[str, Any], List[Dict[str, str]]]:
    """
    Normalise a salary payload. Returns (clean_fields, errors); errors is empty
    when the payload is usable. Missing allowances default to 0, missing BPJS
    rates fall back to the column defaults.
    """
    errors: List[Dict[str, str]] = []
    clean: Dict[str, Any] = {}

    base = _dec(j.get("base_salary"))
    if base is None:
        errors.append({"field": "base_salary", "message": "base_salary is required"})
    elif base <= 0:
        errors.append({"field": "base_salary", "message": "base_salary must be greater than 0"})
    else:
        clean["base_salary"] = base

    for f in EmployeeSalary.ALLOWANCE_FIELDS:
        v = _dec(j.get(f, 0))
        if v is None or v < 0:
            errors.append({"field": f, "message": f"{f} must be a non-negative number"})
        else:
            clean[f] = v

    for f in RATE_FIELDS:
        if j.get(f) is None:
            continue
        v = _dec(j.get(f))
        if v is None or v < 0 or v > 100:
            errors.append({"field": f, "message": f"{f} must be a percentage between 0 and 100"})
        else:
            clean[f] = v

    ptkp = (j.get("ptkp_status") or "TK/0").strip().upper()
    if not PTKP_RE.match(ptkp):
        errors.append({"field": "ptkp_status", "message": "ptkp_status must look like TK/0 .. K/3"})
    else:
        clean["ptkp_status"] = ptkp

    npwp = (j.get("npwp") or "").strip() or None
    clean["npwp"] = npwp
    return clean, errors


def current_salary(employee_id: int) -> Optional[EmployeeSalary]:
    return (EmployeeSalary.query
            .filter(EmployeeSalary.employee_id == employee_id, EmployeeSalary.is_active.is_(True))
            .first())


def salary_as_of(employee_id: int, on_date: date) -> Optional[EmployeeSalary]:
    """The configuration effective on `on_date`: latest effective_date <= on_date."""
    return (EmployeeSalary.query
            .filter(EmployeeSalary.employee_id == employee_id)
            .filter(EmployeeSalary.effective_date <= on_date)
            .order_by(EmployeeSalary.effective_date.desc(), EmployeeSalary.id.desc())
            .first())


def salary_history(employee_id: int) -> List[EmployeeSalary]:
    return (EmployeeSalary.query
            .filter(EmployeeSalary.employee_id == employee_id)
            .order_by(EmployeeSalary.effective_date.desc())
            .all())


def add_salary_config(employee_id: int, payload: Dict[str, Any], effective_date: date,
                      created_by: Optional[str] = None) -> EmployeeSalary:
    """
    Append a new effective-dated configuration and deactivate the current one
    in the same transaction. Back-dating before the active row is refused so
    history stays a strictly increasing sequence.
    """
    if Employee.query.get(employee_id) is None:
        raise ValidationFailed([{"field": "employee_id", "message": "employee not found"}])

    clean, errors = validate_salary_payload(payload)
    if errors:
        raise ValidationFailed(errors)

    cur = (EmployeeSalary.query
           .filter(EmployeeSalary.employee_id == employee_id, EmployeeSalary.is_active.is_(True))
           .with_for_update()
           .first())
    if cur is not None and effective_date <= cur.effective_date:
        raise ValidationFailed([{
            "field": "effective_date",
            "message": f"effective_date must be after the current configuration ({cur.effective_date.isoformat()})",
        }])

    if cur is not None:
        cur.is_active = False
        # deactivate before insert so the active-row index never sees two rows
        db.session.flush()

    row = EmployeeSalary(
        employee_id=employee_id,
        effective_date=effective_date,
        is_active=True,
        created_by=created_by,
        **clean,
    )
    db.session.add(row)
    db.session.commit()
    log.info("salary config %s active for employee %s from %s", row.id, employee_id, effective_date)
    return row


def gross_components(cfg: EmployeeSalary) -> Dict[str, Decimal]:
    out = {"base_salary": Decimal(str(cfg.base_salary or 0))}
    for f in EmployeeSalary.ALLOWANCE_FIELDS:
        out[f] = Decimal(str(getattr(cfg, f) or 0))
    out["total_allowances"] = sum((out[f] for f in EmployeeSalary.ALLOWANCE_FIELDS), Decimal("0"))
    return out
