# payroll_api/models/payroll/__init__.py
# Import order matters: salary configuration first, then summaries/adjustments,
# then pay_run (details snapshot salary rows).
from payroll_api.extensions import db  # noqa

from .salary import EmployeeSalary
from .tax import PtkpTerMapping, Pph21TerRate
from .adjustments import PayAdjustment
from .summary import MonthlyAttendanceSummary
from .pay_run import PayrollRun, PayrollDetail

__all__ = [
    "EmployeeSalary",
    "PtkpTerMapping", "Pph21TerRate",
    "PayAdjustment", "MonthlyAttendanceSummary",
    "PayrollRun", "PayrollDetail",
]
