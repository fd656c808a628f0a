# payroll_api/services/attendance_summary.py
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from payroll_api.extensions import db
from payroll_api.common.errors import PeriodLocked
from payroll_api.models.attendance import AttendanceRecord
from payroll_api.models.employee import Employee
from payroll_api.models.leave import LeaveRequest
from payroll_api.models.overtime import OvertimeRequest
from payroll_api.models.payroll.pay_run import PayrollRun, LOCKED_STATUSES
from payroll_api.models.payroll.summary import MonthlyAttendanceSummary
from payroll_api.services import calendar as cal

log = logging.getLogger(__name__)

# flat penalty per late incident
LATE_DEDUCTION_RATE = Decimal("50000")


@dataclass(frozen=True)
class PayrollCalculation:
    total_working_days: int
    total_present: int
    total_late: int
    total_late_minutes: int
    total_absent: int
    total_leave_days: int
    total_overtime_hours: Decimal
    total_overtime_pay: Decimal
    deductions: Decimal

    def as_dict(self):
        out = asdict(self)
        for k in ("total_overtime_hours", "total_overtime_pay", "deductions"):
            out[k] = float(out[k])
        return out


def ensure_period_open(month: int, year: int) -> None:
    """Refuse changes to a period whose payroll run is finalized or paid."""
    run = (PayrollRun.query
           .filter(PayrollRun.month == month, PayrollRun.year == year)
           .filter(PayrollRun.status.in_(LOCKED_STATUSES))
           .first())
    if run is not None:
        raise PeriodLocked(month, year, run.status)


def generate_monthly_summary(employee_id: int, month: int, year: int,
                             late_deduction_rate=LATE_DEDUCTION_RATE) -> PayrollCalculation:
    """
    Aggregate one employee's month. Reads only; see save_monthly_summary for
    persistence.

    Working days are Mon–Fri in the month; public holidays are not subtracted.
    """
    d_from, d_to = cal.month_bounds(year, month)
    working_days = cal.count_weekdays(d_from, d_to)

    attendances = (AttendanceRecord.query
                   .filter(AttendanceRecord.employee_id == employee_id)
                   .filter(AttendanceRecord.date >= d_from, AttendanceRecord.date <= d_to)
                   .all())
    present = sum(1 for a in attendances if a.status in ("present", "late"))
    late_rows = [a for a in attendances if a.is_late]
    late = len(late_rows)
    late_minutes = sum(int(a.late_minutes or 0) for a in late_rows)

    leaves = (LeaveRequest.query
              .filter(LeaveRequest.employee_id == employee_id)
              .filter(LeaveRequest.status == "approved")
              .filter(LeaveRequest.start_date <= d_to, LeaveRequest.end_date >= d_from)
              .all())
    # only the part of each leave inside this month counts
    leave_days = sum(
        cal.count_weekdays(max(lv.start_date, d_from), min(lv.end_date, d_to))
        for lv in leaves
    )

    overtimes = (OvertimeRequest.query
                 .filter(OvertimeRequest.employee_id == employee_id)
                 .filter(OvertimeRequest.status == "approved")
                 .filter(OvertimeRequest.date >= d_from, OvertimeRequest.date <= d_to)
                 .all())
    ot_minutes = sum(int(o.duration_minutes or 0) for o in overtimes)
    ot_hours = (Decimal(ot_minutes) / Decimal(60)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    # trust the pay frozen at approval time
    ot_pay = sum((Decimal(str(o.calculated_overtime_pay or 0)) for o in overtimes), Decimal("0"))

    absent = max(0, working_days - present - leave_days)
    deductions = Decimal(late) * Decimal(str(late_deduction_rate))

    return PayrollCalculation(
        total_working_days=working_days,
        total_present=present,
        total_late=late,
        total_late_minutes=late_minutes,
        total_absent=absent,
        total_leave_days=leave_days,
        total_overtime_hours=ot_hours,
        total_overtime_pay=ot_pay,
        deductions=deductions,
    )


def save_monthly_summary(employee_id: int, month: int, year: int, calc: PayrollCalculation,
                         commit: bool = True) -> MonthlyAttendanceSummary:
    """Upsert keyed on (employee_id, month, year); a re-run overwrites."""
    ensure_period_open(month, year)

    row = MonthlyAttendanceSummary.query.filter_by(employee_id=employee_id, month=month, year=year).first()
    if row is None:
        row = MonthlyAttendanceSummary(employee_id=employee_id, month=month, year=year)
        db.session.add(row)

    row.total_working_days = calc.total_working_days
    row.total_present = calc.total_present
    row.total_late = calc.total_late
    row.total_late_minutes = calc.total_late_minutes
    row.total_absent = calc.total_absent
    row.total_leave_days = calc.total_leave_days
    row.total_overtime_hours = calc.total_overtime_hours
    row.total_overtime_pay = calc.total_overtime_pay
    row.deductions = calc.deductions
    row.generated_at = datetime.utcnow()

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return row


def active_employees() -> List[Employee]:
    return Employee.query.filter(Employee.status == "active").order_by(Employee.id.asc()).all()


def generate_all_summaries(month: int, year: int, late_deduction_rate=LATE_DEDUCTION_RATE,
                           employee_ids: Optional[List[int]] = None) -> List[MonthlyAttendanceSummary]:
    ensure_period_open(month, year)
    emps = active_employees()
    if employee_ids:
        wanted = set(employee_ids)
        emps = [e for e in emps if e.id in wanted]

    out: List[MonthlyAttendanceSummary] = []
    for emp in emps:
        calc = generate_monthly_summary(emp.id, month, year, late_deduction_rate)
        out.append(save_monthly_summary(emp.id, month, year, calc, commit=False))
    db.session.commit()
    log.info("attendance summaries regenerated for %02d/%s: %d employees", month, year, len(out))
    return out


def list_summaries(month: int, year: int, employee_id: Optional[int] = None):
    q = MonthlyAttendanceSummary.query.filter_by(month=month, year=year)
    if employee_id is not None:
        q = q.filter(MonthlyAttendanceSummary.employee_id == employee_id)
    return q.order_by(MonthlyAttendanceSummary.employee_id.asc())
