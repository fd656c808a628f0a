# payroll_api/services/payroll_run.py
"""
Payroll run lifecycle:

    draft --finalize--> finalized --mark_paid--> paid
    draft --cancel----> cancelled

Every transition locks the run row, checks the current status and commits the
run together with its details in one transaction. Illegal transitions raise
InvalidTransition and leave the store untouched.

Details are written in batches while the run carries `generating`; finalize
and cancel refuse such a run, and each batch re-checks the run under lock.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from payroll_api.extensions import db
from payroll_api.common.errors import DuplicatePeriod, FrozenRecord, InvalidTransition, ValidationFailed
from payroll_api.common.paging import period_errors
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.adjustments import PayAdjustment
from payroll_api.models.payroll.pay_run import PayrollRun, PayrollDetail
from payroll_api.models.payroll.salary import EmployeeSalary
from payroll_api.services import calendar as cal
from payroll_api.services.attendance_summary import (
    LATE_DEDUCTION_RATE,
    PayrollCalculation,
    active_employees,
    generate_monthly_summary,
    save_monthly_summary,
)
from payroll_api.services.salary import gross_components, salary_as_of
from payroll_api.services.tax import resolve_withholding

log = logging.getLogger(__name__)

BATCH_SIZE = 50
_UNIT = Decimal("1")


# ---------- pure calculation ----------

def _pct(amount: Decimal, rate_percent) -> Decimal:
    return (amount * Decimal(str(rate_percent or 0)) / Decimal(100)).quantize(_UNIT, rounding=ROUND_HALF_UP)


def compute_detail(employee_id: int, cfg: EmployeeSalary, calc: PayrollCalculation,
                   loan_deduction: Decimal = Decimal("0"),
                   other_deductions: Decimal = Decimal("0")) -> Dict[str, Any]:
    """Column values for one PayrollDetail. Depends only on its arguments and the tax tables."""
    comps = gross_components(cfg)
    base = comps["base_salary"]
    overtime_pay = Decimal(str(calc.total_overtime_pay))
    gross = base + comps["total_allowances"] + overtime_pay

    tax = resolve_withholding(gross, cfg.ptkp_status)

    bpjs_kes_emp = _pct(base, cfg.bpjs_kesehatan_employee_rate)
    bpjs_tk_emp = _pct(base, cfg.bpjs_tk_employee_rate)
    late_deduction = Decimal(str(calc.deductions))

    total_deductions = (late_deduction + bpjs_kes_emp + bpjs_tk_emp + tax.withholding
                        + loan_deduction + other_deductions)

    return {
        "employee_id": employee_id,
        "salary_id": cfg.id,
        "working_days": calc.total_working_days,
        "present_days": calc.total_present,
        "late_days": calc.total_late,
        "late_minutes": calc.total_late_minutes,
        "absent_days": calc.total_absent,
        "leave_days": calc.total_leave_days,
        "overtime_hours": calc.total_overtime_hours,
        **comps,
        "overtime_pay": overtime_pay,
        "gross_salary": gross,
        "late_deduction": late_deduction,
        "bpjs_kesehatan_employee": bpjs_kes_emp,
        "bpjs_tk_employee": bpjs_tk_emp,
        "bpjs_kesehatan_employer": _pct(base, cfg.bpjs_kesehatan_employer_rate),
        "bpjs_tk_employer": _pct(base, cfg.bpjs_tk_employer_rate),
        "pph21": tax.withholding,
        "ptkp_status": tax.ptkp_status,
        "ter_category": tax.category,
        "ter_rate": tax.rate,
        "tax_resolution": tax.status,
        "loan_deduction": loan_deduction,
        "other_deductions": other_deductions,
        "total_deductions": total_deductions,
        "net_salary": gross - total_deductions,
    }


# ---------- store helpers ----------

def _period_adjustments(employee_id: int, month: int, year: int) -> Tuple[Decimal, Decimal]:
    period = f"{year:04d}-{month:02d}"
    rows = (db.session.query(PayAdjustment.type, db.func.coalesce(db.func.sum(PayAdjustment.amount), 0))
            .filter(PayAdjustment.employee_id == employee_id, PayAdjustment.period == period)
            .group_by(PayAdjustment.type)
            .all())
    sums = {t: Decimal(str(v)) for t, v in rows}
    return sums.get("loan", Decimal("0")), sums.get("other", Decimal("0"))


def _existing_open_run(month: int, year: int) -> Optional[PayrollRun]:
    return (PayrollRun.query
            .filter(PayrollRun.month == month, PayrollRun.year == year)
            .filter(PayrollRun.status != "cancelled")
            .first())


def _lock_run(run_id: int) -> PayrollRun:
    return PayrollRun.query.filter(PayrollRun.id == run_id).with_for_update().populate_existing().first_or_404()


def _ensure_status(run: PayrollRun, allowed: Iterable[str], action: str):
    allowed = tuple(allowed)
    if run.status not in allowed:
        db.session.rollback()
        raise InvalidTransition(run.id, run.status, action, allowed)


def _eligible_employees(on_date: date) -> Tuple[List[Tuple[Employee, EmployeeSalary]], List[Dict[str, Any]]]:
    pairs: List[Tuple[Employee, EmployeeSalary]] = []
    skipped: List[Dict[str, Any]] = []
    for emp in active_employees():
        cfg = salary_as_of(emp.id, on_date)
        if cfg is None:
            skipped.append({"employee_id": emp.id, "reason": "no salary configuration"})
            continue
        if Decimal(str(cfg.base_salary or 0)) <= 0:
            skipped.append({"employee_id": emp.id, "reason": "base salary must be greater than 0"})
            continue
        pairs.append((emp, cfg))
    for s in skipped:
        log.warning("payroll: skipping employee %s (%s)", s["employee_id"], s["reason"])
    return pairs, skipped


def refresh_totals(run: PayrollRun, commit: bool = True) -> PayrollRun:
    """Run totals re-read from stored details, never accumulated in memory."""
    count, gross, deductions, net = (
        db.session.query(
            db.func.count(PayrollDetail.id),
            db.func.coalesce(db.func.sum(PayrollDetail.gross_salary), 0),
            db.func.coalesce(db.func.sum(PayrollDetail.total_deductions), 0),
            db.func.coalesce(db.func.sum(PayrollDetail.net_salary), 0),
        )
        .filter(PayrollDetail.payroll_run_id == run.id)
        .one()
    )
    run.total_employees = int(count or 0)
    run.total_gross_salary = Decimal(str(gross))
    run.total_deductions = Decimal(str(deductions))
    run.total_net_salary = Decimal(str(net))
    if commit:
        db.session.commit()
    return run


def _ensure_not_generating(run: PayrollRun, action: str):
    if run.generating:
        db.session.rollback()
        raise InvalidTransition(run.id, "draft (generating)", action, ("draft",))


def _end_generation(run: PayrollRun):
    """Clear the marker and settle totals, unless the run already left draft."""
    run = _lock_run(run.id)
    if run.status == "draft":
        run.generating = False
        refresh_totals(run)
    else:
        db.session.rollback()


def _write_details(run: PayrollRun, late_deduction_rate, batch_size: int) -> Dict[str, Any]:
    """
    Compute and insert one detail per eligible employee, committing per batch.

    Each batch re-locks the run and stops with InvalidTransition once it is no
    longer a draft; run totals are refreshed in the same transaction as the
    batch. A failing batch is rolled back as a whole before the error is
    re-raised.
    """
    pairs, skipped = _eligible_employees(run.period_end)
    batch_size = max(1, int(batch_size or BATCH_SIZE))
    written = 0

    for i in range(0, len(pairs), batch_size):
        batch = pairs[i:i + batch_size]
        run = _lock_run(run.id)
        if run.status != "draft":
            log.warning("payroll run %s left draft (%s) during generation; %d details written",
                        run.id, run.status, written)
            _ensure_status(run, ("draft",), "write details")
        try:
            for emp, cfg in batch:
                calc = generate_monthly_summary(emp.id, run.month, run.year, late_deduction_rate)
                save_monthly_summary(emp.id, run.month, run.year, calc, commit=False)
                loan, other = _period_adjustments(emp.id, run.month, run.year)
                db.session.add(PayrollDetail(payroll_run_id=run.id, **compute_detail(emp.id, cfg, calc, loan, other)))
            refresh_totals(run, commit=False)
            db.session.commit()
            written += len(batch)
        except FrozenRecord:
            db.session.rollback()
            log.warning("payroll run %s was locked mid-batch; batch starting at employee %s discarded",
                        run.id, batch[0][0].id)
            raise
        except SQLAlchemyError:
            db.session.rollback()
            log.exception("payroll run %s: batch starting at employee %s failed", run.id, batch[0][0].id)
            _end_generation(run)
            raise

    _end_generation(run)
    return {"processed": written, "skipped": skipped}


# ---------- transitions ----------

def create_run(month: int, year: int, generated_by: Optional[str] = None,
               late_deduction_rate=LATE_DEDUCTION_RATE,
               batch_size: int = BATCH_SIZE) -> Tuple[PayrollRun, Dict[str, Any]]:
    errors = period_errors(month, year)
    if errors:
        raise ValidationFailed(errors)

    if _existing_open_run(month, year) is not None:
        raise DuplicatePeriod(month, year)

    period_start, period_end = cal.month_bounds(year, month)
    run = PayrollRun(
        month=month,
        year=year,
        period_start=period_start,
        period_end=period_end,
        status="draft",
        generating=True,
        generated_by=generated_by,
        generated_at=datetime.utcnow(),
    )
    db.session.add(run)
    try:
        db.session.commit()
    except IntegrityError:
        # lost the race to a concurrent create: the partial unique index decides
        db.session.rollback()
        raise DuplicatePeriod(month, year)

    log.info("payroll run %s created for %02d/%s by %s", run.id, month, year, generated_by)
    report = _write_details(run, late_deduction_rate, batch_size)
    return run, report


def regenerate_run(run_id: int, late_deduction_rate=LATE_DEDUCTION_RATE,
                   batch_size: int = BATCH_SIZE) -> Tuple[PayrollRun, Dict[str, Any]]:
    """
    Wipe and rebuild the details of a draft run from current data. Also the
    way out for a run left `generating` by an interrupted create.
    """
    run = _lock_run(run_id)
    _ensure_status(run, ("draft",), "regenerate")
    run.generating = True
    PayrollDetail.query.filter_by(payroll_run_id=run.id).delete()
    db.session.flush()
    report = _write_details(run, late_deduction_rate, batch_size)
    log.info("payroll run %s regenerated: %d details", run.id, report["processed"])
    return run, report


def finalize_run(run_id: int, actor: Optional[str] = None) -> PayrollRun:
    run = _lock_run(run_id)
    _ensure_status(run, ("draft",), "finalize")
    _ensure_not_generating(run, "finalize")
    run.status = "finalized"
    run.finalized_by = actor
    run.finalized_at = datetime.utcnow()
    db.session.commit()
    log.info("payroll run %s finalized by %s", run.id, actor)
    return run


def mark_paid(run_id: int) -> PayrollRun:
    run = _lock_run(run_id)
    _ensure_status(run, ("finalized",), "mark as paid")
    now = datetime.utcnow()
    run.status = "paid"
    run.paid_at = now
    PayrollDetail.query.filter_by(payroll_run_id=run.id).update(
        {"payment_status": "paid", "paid_at": now}
    )
    db.session.commit()
    log.info("payroll run %s marked paid", run.id)
    return run


def cancel_run(run_id: int, actor: Optional[str] = None) -> PayrollRun:
    run = _lock_run(run_id)
    _ensure_status(run, ("draft",), "cancel")
    _ensure_not_generating(run, "cancel")
    run.status = "cancelled"
    run.cancelled_by = actor
    run.cancelled_at = datetime.utcnow()
    db.session.commit()
    log.info("payroll run %s cancelled by %s; period %02d/%s released", run.id, actor, run.month, run.year)
    return run


def mark_slips_generated(run_id: int, employee_ids: Optional[List[int]] = None) -> int:
    run = _lock_run(run_id)
    _ensure_status(run, ("finalized", "paid"), "record slips")
    q = PayrollDetail.query.filter(PayrollDetail.payroll_run_id == run.id)
    if employee_ids:
        q = q.filter(PayrollDetail.employee_id.in_(employee_ids))
    n = q.update({"slip_generated": True}, synchronize_session=False)
    db.session.commit()
    return n


def list_runs(status: Optional[str] = None, year: Optional[int] = None):
    q = PayrollRun.query
    if status:
        q = q.filter(PayrollRun.status == status)
    if year is not None:
        q = q.filter(PayrollRun.year == year)
    return q.order_by(PayrollRun.year.desc(), PayrollRun.month.desc(), PayrollRun.id.desc())
