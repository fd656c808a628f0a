from datetime import datetime, date
from payroll_api.extensions import db

class EmployeeSalary(db.Model):
    """
    Append-only salary history. A new effective-dated row deactivates its
    predecessor; rows are never edited in place.
    """
    __tablename__ = "employee_salaries"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    effective_date = db.Column(db.Date, nullable=False, default=date.today)

    base_salary = db.Column(db.Numeric(14, 2), nullable=False)
    transport_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    meal_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    position_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    housing_allowance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    other_allowances = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # BPJS rates in percent (1.00 == 1%)
    bpjs_kesehatan_employee_rate = db.Column(db.Numeric(5, 2), nullable=False, default=1.0)
    bpjs_kesehatan_employer_rate = db.Column(db.Numeric(5, 2), nullable=False, default=4.0)
    bpjs_tk_employee_rate = db.Column(db.Numeric(5, 2), nullable=False, default=2.0)
    bpjs_tk_employer_rate = db.Column(db.Numeric(5, 2), nullable=False, default=3.7)

    ptkp_status = db.Column(db.String(8), nullable=False, default="TK/0")
    npwp = db.Column(db.String(32))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("employee_id", "effective_date", name="uq_emp_salary_effective"),
        # at most one active row per employee
        db.Index(
            "uq_emp_salary_active", "employee_id", unique=True,
            postgresql_where=db.text("is_active"),
            sqlite_where=db.text("is_active = 1"),
        ),
    )

    ALLOWANCE_FIELDS = (
        "transport_allowance",
        "meal_allowance",
        "position_allowance",
        "housing_allowance",
        "other_allowances",
    )
