import os
from decimal import Decimal

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.payroll.tax import PtkpTerMapping, Pph21TerRate
from payroll_api.services.tax import (
    resolve_withholding,
    compute_withholding,
    load_tax_tables,
    RESOLVED, NO_INCOME, UNMAPPED_STATUS, NO_BRACKET,
)

# A slice of category A (PP 58/2023); rates are fractions of gross
TABLES = {
    "mappings": [
        {"ptkp_status": "TK/0", "ter_category": "A"},
        {"ptkp_status": "TK/1", "ter_category": "A"},
        {"ptkp_status": "K/0", "ter_category": "A"},
        {"ptkp_status": "K/3", "ter_category": "C"},
    ],
    "rates": [
        {"category_code": "A", "min_gross_income": 0, "max_gross_income": 5400000, "rate_percentage": 0},
        {"category_code": "A", "min_gross_income": 5400001, "max_gross_income": 5650000, "rate_percentage": "0.0025"},
        {"category_code": "A", "min_gross_income": 5650001, "max_gross_income": 5950000, "rate_percentage": "0.005"},
        {"category_code": "A", "min_gross_income": 5950001, "max_gross_income": 6300000, "rate_percentage": "0.0075"},
        {"category_code": "A", "min_gross_income": 6300001, "max_gross_income": 6750000, "rate_percentage": "0.01"},
        {"category_code": "A", "min_gross_income": 6750001, "max_gross_income": 7500000, "rate_percentage": "0.0125"},
        {"category_code": "A", "min_gross_income": 7500001, "max_gross_income": 8550000, "rate_percentage": "0.015"},
    ],
}


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def test_resolves_rate_and_floors_amount():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        load_tax_tables(TABLES)

        r = resolve_withholding(Decimal("7000000"), "TK/0")
        assert r.status == RESOLVED
        assert r.category == "A"
        assert r.rate == Decimal("0.0125")
        assert r.withholding == Decimal("87500")

        # 5,500,999 x 0.25% = 13,752.4975 -> floor
        assert compute_withholding(Decimal("5500999"), "TK/0") == Decimal("13752")
        # below the first taxable band
        assert compute_withholding(Decimal("5000000"), "TK/0") == 0


def test_soft_fails_return_zero_with_status():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        load_tax_tables(TABLES)

        assert resolve_withholding(0, "TK/0").status == NO_INCOME
        assert resolve_withholding(Decimal("-5"), "TK/0").withholding == 0

        unmapped = resolve_withholding(Decimal("7000000"), "K/2")
        assert unmapped.status == UNMAPPED_STATUS
        assert unmapped.withholding == 0

        assert resolve_withholding(Decimal("7000000"), None).status == UNMAPPED_STATUS

        # K/3 maps to C but no C bands are loaded
        no_band = resolve_withholding(Decimal("7000000"), "K/3")
        assert no_band.status == NO_BRACKET
        assert no_band.category == "C"
        assert no_band.withholding == 0

        # above the loaded table
        assert resolve_withholding(Decimal("90000000"), "TK/0").status == NO_BRACKET


def test_misses_are_logged(caplog):
    app = _mk_app()
    with app.app_context():
        db.create_all()
        with caplog.at_level("WARNING", logger="payroll_api.services.tax"):
            resolve_withholding(Decimal("7000000"), "TK/0")
        assert "no category mapped" in caplog.text


def test_status_is_normalised():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        load_tax_tables(TABLES)
        assert resolve_withholding(Decimal("7000000"), " tk/0 ").status == RESOLVED


def test_overlapping_bands_highest_rate_wins():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        db.session.add(PtkpTerMapping(ptkp_status="TK/0", ter_category="A"))
        db.session.add_all([
            Pph21TerRate(category_code="A", min_gross_income=0, max_gross_income=10000000, rate_percentage=Decimal("0.01")),
            Pph21TerRate(category_code="A", min_gross_income=6000000, max_gross_income=8000000, rate_percentage=Decimal("0.02")),
        ])
        db.session.commit()

        assert resolve_withholding(Decimal("7000000"), "TK/0").withholding == Decimal("140000")
        assert resolve_withholding(Decimal("9000000"), "TK/0").withholding == Decimal("90000")


def test_withholding_is_monotonic_within_category():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        load_tax_tables(TABLES)
        prev = Decimal("0")
        for gross in range(5000000, 8550001, 50000):
            amt = compute_withholding(Decimal(gross), "TK/0")
            assert amt >= prev
            prev = amt


def test_loader_replaces_rates_per_category():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        load_tax_tables(TABLES)
        res = load_tax_tables({
            "mappings": [{"ptkp_status": "TK/0", "ter_category": "B"}],
            "rates": [{"category_code": "A", "min_gross_income": 0, "max_gross_income": 99999999,
                       "rate_percentage": "0.05"}],
        })
        assert res == {"mappings": 1, "rates": 1, "categories": ["A"]}
        assert Pph21TerRate.query.filter_by(category_code="A").count() == 1
        assert PtkpTerMapping.query.filter_by(ptkp_status="TK/0").first().ter_category == "B"
