from datetime import datetime
from payroll_api.extensions import db

class Employee(db.Model):
    """Active-employee roster; maintained by the HR master-data screens."""
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    code  = db.Column(db.String(32), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name  = db.Column(db.String(160), nullable=False)
    department = db.Column(db.String(120), nullable=True)
    position   = db.Column(db.String(120), nullable=True)

    doj = db.Column(db.Date, nullable=True)   # date of joining
    dol = db.Column(db.Date, nullable=True)   # date of leaving (null if active)
    status = db.Column(db.String(16), default="active", nullable=False)  # active/inactive

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_emp_status", "status"),
    )
