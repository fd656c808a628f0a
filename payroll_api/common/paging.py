# payroll_api/common/paging.py
from datetime import date
from typing import Optional

from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 200

def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    try:
        size = int(request.args.get("size", DEFAULT_SIZE))
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def paginate(q):
    """Apply ?page/&size to a query. Returns (rows, meta)."""
    page, size = page_limit()
    total = q.count()
    rows = q.offset((page - 1) * size).limit(size).all()
    return rows, {"page": page, "size": size, "total": total}

def parse_date(s) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(str(s))
    except Exception:
        return None

def parse_int(s) -> Optional[int]:
    if s is None or s == "":
        return None
    try:
        return int(s)
    except (TypeError, ValueError):
        return None

def period_errors(month, year) -> list:
    """Field errors for a payroll period; empty when (month, year) is usable."""
    errors = []
    if not isinstance(month, int) or not 1 <= month <= 12:
        errors.append({"field": "month", "message": "month must be 1..12"})
    if not isinstance(year, int) or not 2000 <= year <= 2100:
        errors.append({"field": "year", "message": "year must be 2000..2100"})
    return errors
