# payroll_api/services/overtime.py
"""
Overtime pricing per UU Ketenagakerjaan No. 13/2003 and the request lifecycle
that feeds approved, priced overtime into payroll.

Rules (defaults, overridable through an effective-dated OvertimePolicy row):
  - weekday: 1.5x for hours 1-2, 2x for hour 3 onwards; max 3 h/day
  - weekend / public holiday: 2x for hours 1-8, 3x for hours 9-10, 4x after
  - max 14 h/week across all submitted requests
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time as _time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Optional, Sequence, Tuple

from payroll_api.extensions import db
from payroll_api.common.errors import InvalidTransition
from payroll_api.models.attendance import PublicHoliday
from payroll_api.models.overtime import OvertimePolicy, OvertimeRequest
from payroll_api.services import calendar as cal
from payroll_api.services.salary import salary_as_of

log = logging.getLogger(__name__)

STANDARD_MONTHLY_HOURS = 173
_CENT = Decimal("0.01")
_UNIT = Decimal("1")


@dataclass(frozen=True)
class OvertimeRules:
    weekday_multiplier_1_2: Decimal = Decimal("1.5")
    weekday_multiplier_3plus: Decimal = Decimal("2")
    holiday_multiplier_1_8: Decimal = Decimal("2")
    holiday_multiplier_9_10: Decimal = Decimal("3")
    holiday_multiplier_11plus: Decimal = Decimal("4")
    max_hours_per_day: Decimal = Decimal("3")
    max_hours_per_week: Decimal = Decimal("14")

    @classmethod
    def from_model(cls, p: OvertimePolicy) -> "OvertimeRules":
        return cls(
            weekday_multiplier_1_2=Decimal(str(p.weekday_multiplier_1_2)),
            weekday_multiplier_3plus=Decimal(str(p.weekday_multiplier_3plus)),
            holiday_multiplier_1_8=Decimal(str(p.holiday_multiplier_1_8)),
            holiday_multiplier_9_10=Decimal(str(p.holiday_multiplier_9_10)),
            holiday_multiplier_11plus=Decimal(str(p.holiday_multiplier_11plus)),
            max_hours_per_day=Decimal(str(p.max_hours_per_day)),
            max_hours_per_week=Decimal(str(p.max_hours_per_week)),
        )

    def weekday_bands(self) -> Sequence[Tuple[Optional[int], Decimal]]:
        return ((2, self.weekday_multiplier_1_2), (None, self.weekday_multiplier_3plus))

    def holiday_bands(self) -> Sequence[Tuple[Optional[int], Decimal]]:
        return (
            (8, self.holiday_multiplier_1_8),
            (10, self.holiday_multiplier_9_10),
            (None, self.holiday_multiplier_11plus),
        )


DEFAULT_RULES = OvertimeRules()


@dataclass(frozen=True)
class OvertimeCalculation:
    duration_hours: Decimal
    multiplier: Decimal
    overtime_pay: Decimal
    is_valid: bool
    validation_message: Optional[str] = None

    def as_dict(self):
        return {
            "duration_hours": float(self.duration_hours),
            "multiplier": float(self.multiplier),
            "overtime_pay": float(self.overtime_pay),
            "is_valid": self.is_valid,
            "validation_message": self.validation_message,
        }


@dataclass(frozen=True)
class WeeklyCheck:
    is_valid: bool
    total_hours: Decimal
    message: Optional[str] = None


def _fmt(d: Decimal) -> str:
    return format(d.quantize(_CENT, rounding=ROUND_HALF_UP), "f").rstrip("0").rstrip(".")


def _t(v) -> Optional[_time]:
    if isinstance(v, _time):
        return v
    if not v:
        return None
    try:
        return _time.fromisoformat(str(v))
    except ValueError:
        return None


def _hours_between(start: _time, end: _time) -> Decimal:
    anchor = date(2000, 1, 1)
    delta = datetime.combine(anchor, end) - datetime.combine(anchor, start)
    return Decimal(int(delta.total_seconds())) / Decimal(3600)


def _bracket_pay(hours: Decimal, rate: Decimal, bands) -> Decimal:
    """Sum of (hours falling in each band) x rate x band multiplier."""
    pay = Decimal("0")
    lower = Decimal("0")
    for upper, mult in bands:
        if hours <= lower:
            break
        top = hours if upper is None else min(hours, Decimal(upper))
        pay += (top - lower) * rate * mult
        if upper is None:
            break
        lower = Decimal(upper)
    return pay


def _invalid(message: str, duration: Decimal = Decimal("0")) -> OvertimeCalculation:
    return OvertimeCalculation(
        duration_hours=duration.quantize(_CENT, rounding=ROUND_HALF_UP),
        multiplier=Decimal("0"),
        overtime_pay=Decimal("0"),
        is_valid=False,
        validation_message=message,
    )


def compute_overtime(start_time, end_time, base_hourly_rate, is_holiday: bool,
                     policy: OvertimeRules = DEFAULT_RULES) -> OvertimeCalculation:
    """
    Price one overtime interval. Never raises for bad input; check `is_valid`.

    `multiplier` is the blended effective multiplier (display only); the
    bracket-summed `overtime_pay` is the authoritative amount.
    """
    start, end = _t(start_time), _t(end_time)
    if start is None or end is None:
        return _invalid("start_time and end_time must be HH:MM")

    try:
        rate = Decimal(str(base_hourly_rate or 0))
    except InvalidOperation:
        return _invalid("Base hourly rate must be a finite number")
    if not rate.is_finite():
        return _invalid("Base hourly rate must be a finite number")
    if rate < 0:
        return _invalid("Base hourly rate cannot be negative")

    hours = _hours_between(start, end)
    if hours <= 0:
        return _invalid("End time must be later than start time")

    if not is_holiday and hours > policy.max_hours_per_day:
        return _invalid(
            f"Weekday overtime is limited to {_fmt(policy.max_hours_per_day)} hours/day",
            duration=hours,
        )

    bands = policy.holiday_bands() if is_holiday else policy.weekday_bands()
    pay = _bracket_pay(hours, rate, bands)
    blended = _bracket_pay(hours, Decimal("1"), bands) / hours

    return OvertimeCalculation(
        duration_hours=hours.quantize(_CENT, rounding=ROUND_HALF_UP),
        multiplier=blended.quantize(_CENT, rounding=ROUND_HALF_UP),
        overtime_pay=pay.quantize(_UNIT, rounding=ROUND_HALF_UP),
        is_valid=True,
    )


def validate_weekly_overtime_hours(current_week_hours, new_hours, max_weekly_hours) -> WeeklyCheck:
    total = Decimal(str(current_week_hours or 0)) + Decimal(str(new_hours or 0))
    cap = Decimal(str(max_weekly_hours))
    if total > cap:
        return WeeklyCheck(
            is_valid=False,
            total_hours=total,
            message=f"Overtime this week would total {_fmt(total)} hours. "
                    f"Maximum is {_fmt(cap)} hours/week.",
        )
    return WeeklyCheck(is_valid=True, total_hours=total)


def hourly_rate(monthly_salary, monthly_hours: int = STANDARD_MONTHLY_HOURS) -> Decimal:
    return (Decimal(str(monthly_salary or 0)) / Decimal(monthly_hours)).quantize(_UNIT, rounding=ROUND_HALF_UP)


# ---------- store-backed helpers ----------

def resolve_overtime_policy(on_date: date) -> OvertimeRules:
    p = (OvertimePolicy.query
         .filter(OvertimePolicy.effective_from <= on_date)
         .filter(db.or_(OvertimePolicy.effective_to.is_(None), OvertimePolicy.effective_to >= on_date))
         .order_by(OvertimePolicy.effective_from.desc(), OvertimePolicy.id.desc())
         .first())
    return OvertimeRules.from_model(p) if p else DEFAULT_RULES


def holidays_between(d_from: date, d_to: date) -> Dict[date, str]:
    rows = PublicHoliday.query.filter(PublicHoliday.date >= d_from, PublicHoliday.date <= d_to).all()
    return {r.date: r.name for r in rows}


def week_hours(employee_id: int, on_date: date, exclude_id: Optional[int] = None) -> Decimal:
    """Hours already submitted (pending or approved) in the Mon–Sun week of on_date."""
    w_from, w_to = cal.week_bounds(on_date)
    q = (db.session.query(db.func.coalesce(db.func.sum(OvertimeRequest.duration_minutes), 0))
         .filter(OvertimeRequest.employee_id == employee_id)
         .filter(OvertimeRequest.date >= w_from, OvertimeRequest.date <= w_to)
         .filter(OvertimeRequest.status.in_(("pending", "approved"))))
    if exclude_id is not None:
        q = q.filter(OvertimeRequest.id != exclude_id)
    minutes = q.scalar() or 0
    return Decimal(int(minutes)) / Decimal(60)


def is_rest_day(d: date) -> bool:
    return cal.is_rest_day(d, holidays_between(d, d))


def _employee_hourly_rate(employee_id: int, on_date: date, monthly_hours: int) -> Optional[Decimal]:
    cfg = salary_as_of(employee_id, on_date)
    if cfg is None:
        return None
    return hourly_rate(cfg.base_salary, monthly_hours)


@dataclass
class OvertimeSubmission:
    calculation: OvertimeCalculation
    request: Optional[OvertimeRequest] = None
    weekly: Optional[WeeklyCheck] = None

    @property
    def is_valid(self) -> bool:
        return self.request is not None

    @property
    def message(self) -> Optional[str]:
        if not self.calculation.is_valid:
            return self.calculation.validation_message
        if self.weekly is not None and not self.weekly.is_valid:
            return self.weekly.message
        return None


def submit_overtime(employee_id: int, work_date: date, start_time, end_time,
                    reason: Optional[str] = None,
                    monthly_hours: int = STANDARD_MONTHLY_HOURS) -> OvertimeSubmission:
    """
    Validate and store a pending request. Nothing is written when the interval
    is invalid or the weekly cap would be exceeded.
    """
    policy = resolve_overtime_policy(work_date)
    holiday = is_rest_day(work_date)
    rate = _employee_hourly_rate(employee_id, work_date, monthly_hours) or Decimal("0")

    calc = compute_overtime(start_time, end_time, rate, holiday, policy)
    if not calc.is_valid:
        return OvertimeSubmission(calculation=calc)

    weekly = validate_weekly_overtime_hours(week_hours(employee_id, work_date),
                                            calc.duration_hours, policy.max_hours_per_week)
    if not weekly.is_valid:
        return OvertimeSubmission(calculation=calc, weekly=weekly)

    start, end = _t(start_time), _t(end_time)
    req = OvertimeRequest(
        employee_id=employee_id,
        date=work_date,
        start_time=start,
        end_time=end,
        reason=reason,
        status="pending",
        is_holiday=holiday,
        duration_minutes=int(_hours_between(start, end) * 60),
    )
    db.session.add(req)
    db.session.commit()
    return OvertimeSubmission(calculation=calc, request=req, weekly=weekly)


def _lock_pending(request_id: int, action: str) -> OvertimeRequest:
    req = (OvertimeRequest.query
           .filter(OvertimeRequest.id == request_id)
           .with_for_update()
           .first_or_404())
    if req.status != "pending":
        raise InvalidTransition(req.id, req.status, action, ("pending",), entity="Overtime request")
    return req


def approve_overtime(request_id: int, approver: Optional[str],
                     monthly_hours: int = STANDARD_MONTHLY_HOURS) -> OvertimeCalculation:
    """
    Price the request with the salary and policy effective on its date and
    freeze the result on the row. Returns the calculation; when it is invalid
    the request is left pending.
    """
    from payroll_api.services.attendance_summary import ensure_period_open

    req = _lock_pending(request_id, "approve")
    ensure_period_open(req.date.month, req.date.year)

    rate = _employee_hourly_rate(req.employee_id, req.date, monthly_hours)
    if rate is None:
        db.session.rollback()
        return _invalid("No salary configuration effective on the overtime date")

    policy = resolve_overtime_policy(req.date)
    holiday = is_rest_day(req.date)
    calc = compute_overtime(req.start_time, req.end_time, rate, holiday, policy)
    if not calc.is_valid:
        db.session.rollback()
        return calc

    req.status = "approved"
    req.is_holiday = holiday
    req.multiplier = calc.multiplier
    req.calculated_overtime_pay = calc.overtime_pay
    req.approved_by = approver
    req.approved_at = datetime.utcnow()
    db.session.commit()
    log.info("overtime request %s approved by %s: %s h, pay %s", req.id, approver,
             calc.duration_hours, calc.overtime_pay)
    return calc


def reject_overtime(request_id: int, approver: Optional[str], reason: Optional[str] = None) -> OvertimeRequest:
    req = _lock_pending(request_id, "reject")
    req.status = "rejected"
    req.rejection_reason = reason
    req.approved_by = approver
    req.approved_at = datetime.utcnow()
    db.session.commit()
    return req


def list_requests(employee_id: Optional[int] = None, status: Optional[str] = None,
                  d_from: Optional[date] = None, d_to: Optional[date] = None):
    q = OvertimeRequest.query
    if employee_id is not None:
        q = q.filter(OvertimeRequest.employee_id == employee_id)
    if status:
        q = q.filter(OvertimeRequest.status == status)
    if d_from:
        q = q.filter(OvertimeRequest.date >= d_from)
    if d_to:
        q = q.filter(OvertimeRequest.date <= d_to)
    return q.order_by(OvertimeRequest.date.desc(), OvertimeRequest.id.desc())
