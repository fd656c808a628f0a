from datetime import date

import pytest

from payroll_api.services import calendar as cal


def test_weekend_and_holiday_detection():
    assert cal.is_weekend(date(2025, 3, 1))        # Saturday
    assert not cal.is_weekend(date(2025, 3, 3))    # Monday
    assert cal.is_holiday(date(2025, 8, 17))
    assert cal.holiday_name(date(2025, 12, 25)) == "Hari Raya Natal"
    assert cal.holiday_name(date(2025, 3, 4)) is None


def test_extra_holidays_override_builtin_calendar():
    extra = {date(2025, 3, 4): "Cuti bersama"}
    assert cal.is_holiday(date(2025, 3, 4), extra)
    assert cal.holiday_name(date(2025, 3, 4), extra) == "Cuti bersama"
    assert cal.is_rest_day(date(2025, 3, 4), extra)
    assert not cal.is_rest_day(date(2025, 3, 4))


def test_month_bounds_and_weekday_count():
    assert cal.month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    d_from, d_to = cal.month_bounds(2025, 3)
    assert cal.count_weekdays(d_from, d_to) == 21
    # holidays are not subtracted (Idul Fitri falls on Mar 31)
    assert cal.count_weekdays(date(2025, 3, 31), date(2025, 3, 31)) == 1
    assert cal.count_weekdays(date(2025, 3, 10), date(2025, 3, 9)) == 0


def test_month_bounds_rejects_bad_month():
    with pytest.raises(ValueError):
        cal.month_bounds(2025, 13)


def test_week_bounds_is_monday_to_sunday():
    assert cal.week_bounds(date(2025, 3, 5)) == (date(2025, 3, 3), date(2025, 3, 9))
    assert cal.week_bounds(date(2025, 3, 9)) == (date(2025, 3, 3), date(2025, 3, 9))
