from datetime import datetime
from payroll_api.extensions import db

class MonthlyAttendanceSummary(db.Model):
    __tablename__ = "monthly_attendance_summaries"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    total_working_days = db.Column(db.Integer, nullable=False, default=0)
    total_present = db.Column(db.Integer, nullable=False, default=0)
    total_late = db.Column(db.Integer, nullable=False, default=0)
    total_late_minutes = db.Column(db.Integer, nullable=False, default=0)
    total_absent = db.Column(db.Integer, nullable=False, default=0)
    total_leave_days = db.Column(db.Integer, nullable=False, default=0)
    total_overtime_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    total_overtime_pay = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    deductions = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    generated_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "month", "year", name="uq_attendance_summary_emp_month"),
        db.Index("ix_attendance_summary_period", "year", "month"),
    )
