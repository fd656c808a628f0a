from datetime import datetime
from payroll_api.extensions import db

ATTENDANCE_STATUSES = ("present", "late", "absent", "leave", "sick")


class AttendanceRecord(db.Model):
    """One row per employee per calendar day, written by attendance capture."""
    __tablename__ = "attendance_records"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)

    clock_in  = db.Column(db.DateTime, nullable=True)
    clock_out = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.Enum(*ATTENDANCE_STATUSES, name="attendance_status_enum"), nullable=False, default="present")
    is_late = db.Column(db.Boolean, nullable=False, default=False)
    late_minutes = db.Column(db.Integer, nullable=False, default=0)
    work_minutes = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
    )


class PublicHoliday(db.Model):
    __tablename__ = "public_holidays"
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
