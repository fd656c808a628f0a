# payroll_api/services/tax.py
"""
PPh 21 withholding with the monthly TER (tarif efektif rata-rata) tables.

    status (TK/0, K/1, ...) --ptkp_ter_mappings--> category (A/B/C)
    category + gross income --pph21_ter_rates--> rate
    withholding = floor(gross x rate)

Lookup misses never block payroll: they resolve to a zero withholding with an
explicit resolution status and a warning in the log.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from payroll_api.extensions import db
from payroll_api.models.payroll.tax import PtkpTerMapping, Pph21TerRate

log = logging.getLogger(__name__)

RESOLVED = "resolved"
NO_INCOME = "no_income"
UNMAPPED_STATUS = "unmapped_status"
NO_BRACKET = "no_bracket"


@dataclass(frozen=True)
class TaxResolution:
    status: str
    withholding: Decimal
    ptkp_status: Optional[str] = None
    category: Optional[str] = None
    rate: Optional[Decimal] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == RESOLVED

    def as_dict(self):
        return {
            "status": self.status,
            "ptkp_status": self.ptkp_status,
            "category": self.category,
            "rate": float(self.rate) if self.rate is not None else None,
            "withholding": float(self.withholding),
        }


def _zero(status: str, ptkp: Optional[str], category: Optional[str] = None) -> TaxResolution:
    return TaxResolution(status=status, withholding=Decimal("0"), ptkp_status=ptkp, category=category)


def resolve_withholding(gross_monthly_income, ptkp_status: Optional[str]) -> TaxResolution:
    gross = Decimal(str(gross_monthly_income or 0))
    ptkp = (ptkp_status or "").strip().upper() or None

    if gross <= 0:
        return _zero(NO_INCOME, ptkp)
    if not ptkp:
        log.warning("PPh21 TER: empty PTKP status (gross=%s); withholding 0", gross)
        return _zero(UNMAPPED_STATUS, ptkp)

    mapping = PtkpTerMapping.query.filter_by(ptkp_status=ptkp).first()
    if mapping is None:
        log.warning("PPh21 TER: no category mapped for PTKP %s (gross=%s); withholding 0", ptkp, gross)
        return _zero(UNMAPPED_STATUS, ptkp)

    category = mapping.ter_category
    # bands may overlap in sparse tables: highest rate wins
    row = (Pph21TerRate.query
           .filter(Pph21TerRate.category_code == category)
           .filter(Pph21TerRate.min_gross_income <= gross)
           .filter(Pph21TerRate.max_gross_income >= gross)
           .order_by(Pph21TerRate.rate_percentage.desc(), Pph21TerRate.id.asc())
           .first())
    if row is None:
        log.warning("PPh21 TER: no rate band in category %s for gross %s (PTKP %s); withholding 0",
                    category, gross, ptkp)
        return _zero(NO_BRACKET, ptkp, category)

    rate = Decimal(str(row.rate_percentage))
    amount = (gross * rate).quantize(Decimal("1"), rounding=ROUND_FLOOR)
    return TaxResolution(status=RESOLVED, withholding=amount, ptkp_status=ptkp, category=category, rate=rate)


def compute_withholding(gross_monthly_income, ptkp_status: Optional[str]) -> Decimal:
    """Withheld PPh 21 in whole rupiah; 0 on any lookup miss."""
    return resolve_withholding(gross_monthly_income, ptkp_status).withholding


def load_tax_tables(data: dict) -> dict:
    """
    Upsert PTKP mappings and replace TER rate rows per category.

    data = {
      "mappings": [{"ptkp_status": "TK/0", "ter_category": "A"}, ...],
      "rates": [{"category_code": "A", "min_gross_income": 0,
                 "max_gross_income": 5400000, "rate_percentage": 0}, ...]
    }
    """
    mapped = 0
    for m in data.get("mappings") or []:
        status = str(m["ptkp_status"]).strip().upper()
        row = PtkpTerMapping.query.filter_by(ptkp_status=status).first()
        if row is None:
            row = PtkpTerMapping(ptkp_status=status)
            db.session.add(row)
        row.ter_category = str(m["ter_category"]).strip().upper()
        mapped += 1

    rates = data.get("rates") or []
    categories = {str(r["category_code"]).strip().upper() for r in rates}
    if categories:
        Pph21TerRate.query.filter(Pph21TerRate.category_code.in_(categories)).delete(synchronize_session=False)
    for r in rates:
        db.session.add(Pph21TerRate(
            category_code=str(r["category_code"]).strip().upper(),
            min_gross_income=Decimal(str(r["min_gross_income"])),
            max_gross_income=Decimal(str(r["max_gross_income"])),
            rate_percentage=Decimal(str(r["rate_percentage"])),
        ))
    db.session.commit()
    return {"mappings": mapped, "rates": len(rates), "categories": sorted(categories)}
