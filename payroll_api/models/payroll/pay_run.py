from datetime import datetime

from sqlalchemy import event

from payroll_api.extensions import db
from payroll_api.common.errors import FrozenRecord

RUN_STATUSES = ("draft", "finalized", "paid", "cancelled")
LOCKED_STATUSES = ("finalized", "paid")


class PayrollRun(db.Model):
    __tablename__ = "payroll_runs"

    id = db.Column(db.Integer, primary_key=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    status = db.Column(db.Enum(*RUN_STATUSES, name="payroll_run_status_enum"), nullable=False, default="draft")

    total_employees = db.Column(db.Integer, nullable=False, default=0)
    total_gross_salary = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_deductions = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_net_salary = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    # set while details are being written in batches; finalize/cancel refuse it
    generating = db.Column(db.Boolean, nullable=False, default=False)

    generated_by = db.Column(db.String(64))
    generated_at = db.Column(db.DateTime, default=datetime.utcnow)
    finalized_by = db.Column(db.String(64))
    finalized_at = db.Column(db.DateTime)
    paid_at = db.Column(db.DateTime)
    cancelled_by = db.Column(db.String(64))
    cancelled_at = db.Column(db.DateTime)

    details = db.relationship("PayrollDetail", back_populates="payroll_run", lazy="select",
                              order_by="PayrollDetail.employee_id")

    __table_args__ = (
        # one open (non-cancelled) run per period, enforced by the store
        db.Index(
            "uq_payroll_runs_open_period", "month", "year", unique=True,
            postgresql_where=db.text("status <> 'cancelled'"),
            sqlite_where=db.text("status <> 'cancelled'"),
        ),
    )


class PayrollDetail(db.Model):
    __tablename__ = "payroll_details"

    id = db.Column(db.Integer, primary_key=True)
    payroll_run_id = db.Column(db.Integer, db.ForeignKey("payroll_runs.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    salary_id = db.Column(db.Integer, db.ForeignKey("employee_salaries.id"))

    # attendance snapshot
    working_days = db.Column(db.Integer, nullable=False, default=0)
    present_days = db.Column(db.Integer, nullable=False, default=0)
    late_days = db.Column(db.Integer, nullable=False, default=0)
    late_minutes = db.Column(db.Integer, nullable=False, default=0)
    absent_days = db.Column(db.Integer, nullable=False, default=0)
    leave_days = db.Column(db.Integer, nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)

    # earnings
    base_salary = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    transport_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    meal_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    position_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    housing_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    other_allowances = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_allowances = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    overtime_pay = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    gross_salary = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # deductions
    late_deduction = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    bpjs_kesehatan_employee = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    bpjs_tk_employee = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    pph21 = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    loan_deduction = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    other_deductions = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_deductions = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_salary = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # employer cost (info only)
    bpjs_kesehatan_employer = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    bpjs_tk_employer = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # tax audit trail: resolved | unmapped_status | no_bracket | no_income
    ptkp_status = db.Column(db.String(8))
    ter_category = db.Column(db.String(8))
    ter_rate = db.Column(db.Numeric(7, 4))
    tax_resolution = db.Column(db.String(20))

    payment_status = db.Column(db.Enum("pending", "paid", name="payroll_payment_status_enum"),
                               nullable=False, default="pending")
    paid_at = db.Column(db.DateTime)
    slip_generated = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    payroll_run = db.relationship("PayrollRun", back_populates="details", lazy="joined")
    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("payroll_run_id", "employee_id", name="uq_payroll_detail_run_employee"),
    )


# Everything except payment_status / paid_at / slip_generated.
FROZEN_FIELDS = tuple(
    c.key for c in PayrollDetail.__table__.columns
    if c.key not in ("id", "payment_status", "paid_at", "slip_generated", "created_at")
)


def _run_is_locked(detail: PayrollDetail) -> bool:
    run = detail.payroll_run
    return run is not None and run.status in LOCKED_STATUSES


@event.listens_for(PayrollDetail, "before_update")
def _guard_frozen_update(mapper, connection, target):
    if not _run_is_locked(target):
        return
    state = db.inspect(target)
    changed = [f for f in FROZEN_FIELDS if state.attrs[f].history.has_changes()]
    if changed:
        raise FrozenRecord(target.id, changed)


@event.listens_for(PayrollDetail, "before_delete")
def _guard_frozen_delete(mapper, connection, target):
    if _run_is_locked(target):
        raise FrozenRecord(target.id, FROZEN_FIELDS)


@event.listens_for(PayrollDetail, "before_insert")
def _guard_frozen_insert(mapper, connection, target):
    # read the committed run status, not the session's copy
    status = connection.execute(
        db.select(PayrollRun.status).where(PayrollRun.id == target.payroll_run_id)
    ).scalar()
    if status in LOCKED_STATUSES:
        raise FrozenRecord(None, FROZEN_FIELDS)
