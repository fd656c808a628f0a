from datetime import datetime, date
from payroll_api.extensions import db


class OvertimePolicy(db.Model):
    """Effective-dated overtime multipliers and caps."""
    __tablename__ = "overtime_policies"

    id = db.Column(db.Integer, primary_key=True)

    weekday_multiplier_1_2 = db.Column(db.Numeric(5, 2), nullable=False, default=1.5)
    weekday_multiplier_3plus = db.Column(db.Numeric(5, 2), nullable=False, default=2)
    holiday_multiplier_1_8 = db.Column(db.Numeric(5, 2), nullable=False, default=2)
    holiday_multiplier_9_10 = db.Column(db.Numeric(5, 2), nullable=False, default=3)
    holiday_multiplier_11plus = db.Column(db.Numeric(5, 2), nullable=False, default=4)
    max_hours_per_day = db.Column(db.Numeric(5, 2), nullable=False, default=3)   # weekdays only
    max_hours_per_week = db.Column(db.Numeric(5, 2), nullable=False, default=14)

    effective_from = db.Column(db.Date, nullable=False, default=date.today)
    effective_to = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_overtime_policies_effective", "effective_from", "effective_to"),
    )


class OvertimeRequest(db.Model):
    __tablename__ = "overtime_requests"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    reason = db.Column(db.Text)

    status = db.Column(db.Enum("pending", "approved", "rejected", name="overtime_status_enum"),
                       nullable=False, default="pending")
    is_holiday = db.Column(db.Boolean, nullable=False, default=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    multiplier = db.Column(db.Numeric(6, 2))
    calculated_overtime_pay = db.Column(db.Numeric(14, 2))

    approved_by = db.Column(db.String(64))
    approved_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.Index("ix_overtime_emp_date_status", "employee_id", "date", "status"),
    )
