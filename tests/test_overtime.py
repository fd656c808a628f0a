import os
from datetime import date
from decimal import Decimal

import pytest

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.employee import Employee
from payroll_api.models.overtime import OvertimePolicy, OvertimeRequest
from payroll_api.models.payroll.salary import EmployeeSalary
from payroll_api.services.overtime import (
    OvertimeRules,
    compute_overtime,
    hourly_rate,
    validate_weekly_overtime_hours,
    submit_overtime,
    approve_overtime,
    reject_overtime,
    resolve_overtime_policy,
)
from payroll_api.common.errors import InvalidTransition

RATE = Decimal("100000")


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


# ---------- pure pricing ----------

def test_weekday_two_hours_is_flat_one_and_a_half():
    r = compute_overtime("18:00", "20:00", RATE, is_holiday=False)
    assert r.is_valid
    assert r.duration_hours == Decimal("2.00")
    assert r.overtime_pay == Decimal("300000")
    assert r.multiplier == Decimal("1.50")


def test_weekday_three_hours_uses_second_band():
    r = compute_overtime("17:00", "20:00", RATE, is_holiday=False)
    assert r.is_valid
    # 2 x 1.5 + 1 x 2
    assert r.overtime_pay == Decimal("500000")
    assert r.multiplier == Decimal("1.67")


def test_holiday_nine_hours_uses_third_multiplier_for_last_hour():
    r = compute_overtime("08:00", "17:00", RATE, is_holiday=True)
    assert r.is_valid
    # 8 x 2 + 1 x 3
    assert r.overtime_pay == Decimal("1900000")
    assert r.multiplier == Decimal("2.11")


def test_holiday_twelve_hours_reaches_top_band():
    r = compute_overtime("06:00", "18:00", RATE, is_holiday=True)
    # 8 x 2 + 2 x 3 + 2 x 4
    assert r.overtime_pay == Decimal("3000000")


def test_half_hour_is_priced_proportionally():
    r = compute_overtime("18:00", "18:30", RATE, is_holiday=False)
    assert r.duration_hours == Decimal("0.50")
    assert r.overtime_pay == Decimal("75000")


def test_end_before_start_is_invalid():
    r = compute_overtime("20:00", "18:00", RATE, is_holiday=False)
    assert not r.is_valid
    assert r.validation_message == "End time must be later than start time"
    assert r.overtime_pay == 0

    same = compute_overtime("18:00", "18:00", RATE, is_holiday=False)
    assert not same.is_valid


def test_weekday_daily_cap():
    r = compute_overtime("17:00", "21:00", RATE, is_holiday=False)
    assert not r.is_valid
    assert "3 hours/day" in r.validation_message
    # no daily cap on holidays
    assert compute_overtime("17:00", "21:00", RATE, is_holiday=True).is_valid


def test_bad_time_and_negative_rate_are_invalid():
    assert not compute_overtime("25:00", "26:00", RATE, False).is_valid
    assert not compute_overtime(None, "18:00", RATE, False).is_valid
    assert not compute_overtime("17:00", "18:00", Decimal("-1"), False).is_valid


def test_non_numeric_or_non_finite_rate_is_invalid_not_raised():
    for rate in ("abc", "NaN", float("inf"), Decimal("-Infinity")):
        r = compute_overtime("08:00", "10:00", rate, False)
        assert not r.is_valid
        assert r.validation_message == "Base hourly rate must be a finite number"
        assert r.overtime_pay == 0


def test_pay_is_monotonic_in_duration():
    prev = Decimal("0")
    for end in ("09:00", "11:00", "14:00", "16:00", "17:00", "18:00", "19:00", "21:00"):
        r = compute_overtime("08:00", end, RATE, is_holiday=True)
        assert r.overtime_pay >= prev
        prev = r.overtime_pay


def test_custom_rules_change_multipliers():
    rules = OvertimeRules(weekday_multiplier_1_2=Decimal("2"), max_hours_per_day=Decimal("4"))
    r = compute_overtime("17:00", "21:00", RATE, False, rules)
    assert r.is_valid
    assert r.overtime_pay == Decimal("800000")


def test_weekly_cap():
    ok = validate_weekly_overtime_hours(10, 4, 14)
    assert ok.is_valid and ok.total_hours == 14
    over = validate_weekly_overtime_hours(12, 3, 14)
    assert not over.is_valid
    assert "15 hours" in over.message and "14 hours/week" in over.message


def test_hourly_rate_rounds_monthly_over_173():
    assert hourly_rate(5000000) == Decimal("28902")
    assert hourly_rate(0) == 0


# ---------- request lifecycle ----------

def _seed(base=Decimal("17300000")):
    e = Employee(code="E001", email="e1@test.local", full_name="Budi")
    db.session.add(e); db.session.commit()
    s = EmployeeSalary(employee_id=e.id, effective_date=date(2025, 1, 1), base_salary=base)
    db.session.add(s); db.session.commit()
    return e


def test_submit_and_approve_prices_with_salary_as_of():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _seed()

        # Wednesday
        res = submit_overtime(e.id, date(2025, 3, 5), "17:00", "20:00", reason="month end")
        assert res.is_valid
        req = res.request
        assert req.status == "pending"
        assert req.duration_minutes == 180
        assert req.is_holiday is False

        calc = approve_overtime(req.id, "hr-1")
        assert calc.is_valid
        db.session.refresh(req)
        assert req.status == "approved"
        assert req.approved_by == "hr-1"
        # hourly = 17,300,000 / 173 = 100,000
        assert Decimal(str(req.calculated_overtime_pay)) == Decimal("500000")


def test_weekend_submission_is_flagged_as_holiday():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _seed()
        res = submit_overtime(e.id, date(2025, 3, 8), "08:00", "12:00")  # Saturday
        assert res.is_valid
        assert res.request.is_holiday is True


def test_submit_rejects_weekly_overflow_without_writing():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _seed()
        # Saturday + Sunday = 12 h, then 3 h on Monday of the same week would be 15
        assert submit_overtime(e.id, date(2025, 3, 8), "08:00", "14:00").is_valid
        assert submit_overtime(e.id, date(2025, 3, 9), "08:00", "14:00").is_valid
        res = submit_overtime(e.id, date(2025, 3, 3), "17:00", "20:00")
        assert not res.is_valid
        assert "Maximum is 14 hours/week" in res.message
        assert OvertimeRequest.query.count() == 2


def test_only_pending_requests_can_be_decided():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _seed()
        req = submit_overtime(e.id, date(2025, 3, 5), "18:00", "19:00").request
        r = reject_overtime(req.id, "hr-1", "not needed")
        assert r.status == "rejected"
        assert r.rejection_reason == "not needed"

        with pytest.raises(InvalidTransition) as ex:
            approve_overtime(req.id, "hr-1")
        assert ex.value.status_code == 409


def test_policy_row_overrides_defaults_for_its_window():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        db.session.add(OvertimePolicy(weekday_multiplier_1_2=2, effective_from=date(2025, 6, 1)))
        db.session.commit()
        assert resolve_overtime_policy(date(2025, 5, 31)).weekday_multiplier_1_2 == Decimal("1.5")
        assert resolve_overtime_policy(date(2025, 6, 2)).weekday_multiplier_1_2 == Decimal("2")
