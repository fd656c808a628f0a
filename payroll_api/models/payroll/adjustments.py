from datetime import datetime
from payroll_api.extensions import db

class PayAdjustment(db.Model):
    __tablename__ = "pay_adjustments"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    period = db.Column(db.String(7), nullable=False)  # YYYY-MM (pay period tag)

    type = db.Column(db.Enum("loan", "other", name="pay_adjustment_type_enum"), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    reason = db.Column(db.String(255))

    created_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_pay_adjustments_emp_period", "employee_id", "period"),
    )
