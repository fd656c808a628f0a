from datetime import datetime
from payroll_api.extensions import db

class PtkpTerMapping(db.Model):
    """PTKP status (TK/0, K/1, ...) → TER category (A, B, C)."""
    __tablename__ = "ptkp_ter_mappings"

    id = db.Column(db.Integer, primary_key=True)
    ptkp_status = db.Column(db.String(8), unique=True, nullable=False)
    ter_category = db.Column(db.String(8), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Pph21TerRate(db.Model):
    __tablename__ = "pph21_ter_rates"

    id = db.Column(db.Integer, primary_key=True)
    category_code = db.Column(db.String(8), nullable=False)
    min_gross_income = db.Column(db.Numeric(16, 2), nullable=False)
    max_gross_income = db.Column(db.Numeric(16, 2), nullable=False)
    # fraction of gross, e.g. 0.0175 for 1.75%
    rate_percentage = db.Column(db.Numeric(7, 4), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_ter_rate_lookup", "category_code", "min_gross_income", "max_gross_income"),
    )
