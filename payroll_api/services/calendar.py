# payroll_api/services/calendar.py
"""
Calendar helpers for payroll: weekends, national holidays, month windows.

Everything here is pure; callers that keep extra holidays in the database
pass them in as a ``{date: name}`` mapping.
"""
from __future__ import annotations

import calendar as _calendar
from datetime import date, timedelta
from typing import Dict, Iterator, Mapping, Optional, Tuple

# Indonesian national holidays (SKB 3 Menteri)
NATIONAL_HOLIDAYS: Dict[date, str] = {
    # --- 2025 ---
    date(2025, 1, 1): "Tahun Baru Masehi",
    date(2025, 1, 27): "Isra Mikraj Nabi Muhammad SAW",
    date(2025, 1, 29): "Tahun Baru Imlek 2576 Kongzili",
    date(2025, 3, 29): "Hari Suci Nyepi Tahun Baru Saka 1947",
    date(2025, 3, 31): "Idul Fitri 1446 Hijriah",
    date(2025, 4, 1): "Idul Fitri 1446 Hijriah",
    date(2025, 4, 18): "Wafat Isa Al Masih",
    date(2025, 4, 20): "Kebangkitan Isa Al Masih (Paskah)",
    date(2025, 5, 1): "Hari Buruh Internasional",
    date(2025, 5, 12): "Hari Raya Waisak 2569 BE",
    date(2025, 5, 29): "Kenaikan Isa Al Masih",
    date(2025, 6, 1): "Hari Lahir Pancasila",
    date(2025, 6, 6): "Idul Adha 1446 Hijriah",
    date(2025, 6, 27): "Tahun Baru Islam 1447 Hijriah",
    date(2025, 8, 17): "Hari Kemerdekaan RI",
    date(2025, 9, 5): "Maulid Nabi Muhammad SAW",
    date(2025, 12, 25): "Hari Raya Natal",
    # --- 2026 ---
    date(2026, 1, 1): "Tahun Baru Masehi",
    date(2026, 1, 16): "Isra Mikraj Nabi Muhammad SAW",
    date(2026, 2, 17): "Tahun Baru Imlek 2577 Kongzili",
    date(2026, 3, 19): "Hari Suci Nyepi Tahun Baru Saka 1948",
    date(2026, 3, 20): "Idul Fitri 1447 Hijriah",
    date(2026, 3, 21): "Idul Fitri 1447 Hijriah",
    date(2026, 4, 3): "Wafat Isa Al Masih",
    date(2026, 4, 5): "Kebangkitan Isa Al Masih (Paskah)",
    date(2026, 5, 1): "Hari Buruh Internasional",
    date(2026, 5, 14): "Kenaikan Isa Al Masih",
    date(2026, 5, 27): "Idul Adha 1447 Hijriah",
    date(2026, 6, 1): "Hari Lahir Pancasila",
    date(2026, 6, 2): "Hari Raya Waisak 2570 BE",
    date(2026, 7, 16): "Tahun Baru Islam 1448 Hijriah",
    date(2026, 8, 17): "Hari Kemerdekaan RI",
    date(2026, 9, 24): "Maulid Nabi Muhammad SAW",
    date(2026, 12, 25): "Hari Raya Natal",
}


def holiday_name(d: date, extra: Optional[Mapping[date, str]] = None) -> Optional[str]:
    if extra and d in extra:
        return extra[d]
    return NATIONAL_HOLIDAYS.get(d)


def is_holiday(d: date, extra: Optional[Mapping[date, str]] = None) -> bool:
    return holiday_name(d, extra) is not None


def is_weekend(d: date) -> bool:
    return d.weekday() >= 5  # 5=Sat, 6=Sun


def is_rest_day(d: date, extra: Optional[Mapping[date, str]] = None) -> bool:
    """Weekend or public holiday; overtime on these days uses holiday pricing."""
    return is_weekend(d) or is_holiday(d, extra)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")
    last = _calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def iter_days(d_from: date, d_to: date) -> Iterator[date]:
    d = d_from
    while d <= d_to:
        yield d
        d += timedelta(days=1)


def count_weekdays(d_from: date, d_to: date) -> int:
    """Mon–Fri days in [d_from, d_to]; 0 for an empty window. Holidays are not subtracted."""
    return sum(1 for d in iter_days(d_from, d_to) if not is_weekend(d))


def week_bounds(d: date) -> Tuple[date, date]:
    """Monday..Sunday week containing d."""
    start = d - timedelta(days=d.weekday())
    return start, start + timedelta(days=6)
