import os
from datetime import date
from decimal import Decimal

import pytest

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.common.errors import ValidationFailed
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.salary import EmployeeSalary
from payroll_api.services.salary import (
    add_salary_config,
    current_salary,
    salary_as_of,
    salary_history,
    validate_salary_payload,
    gross_components,
)


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _emp():
    e = Employee(code="E001", email="e1@test.local", full_name="Siti")
    db.session.add(e); db.session.commit()
    return e


def test_payload_validation():
    clean, errors = validate_salary_payload({"base_salary": 5000000, "meal_allowance": "250000"})
    assert errors == []
    assert clean["base_salary"] == Decimal("5000000")
    assert clean["meal_allowance"] == Decimal("250000")
    assert clean["transport_allowance"] == Decimal("0")
    assert clean["ptkp_status"] == "TK/0"

    _, errors = validate_salary_payload({
        "base_salary": 0,
        "transport_allowance": -1,
        "bpjs_tk_employee_rate": 150,
        "ptkp_status": "X/9",
    })
    fields = {e["field"] for e in errors}
    assert fields == {"base_salary", "transport_allowance", "bpjs_tk_employee_rate", "ptkp_status"}


def test_append_deactivates_predecessor():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _emp()

        first = add_salary_config(e.id, {"base_salary": 5000000}, date(2025, 1, 1), created_by="hr-1")
        second = add_salary_config(e.id, {"base_salary": 6000000, "ptkp_status": "k/1"}, date(2025, 7, 1))

        assert current_salary(e.id).id == second.id
        assert second.ptkp_status == "K/1"
        assert EmployeeSalary.query.get(first.id).is_active is False
        assert [s.id for s in salary_history(e.id)] == [second.id, first.id]
        assert EmployeeSalary.query.filter_by(employee_id=e.id, is_active=True).count() == 1


def test_as_of_resolves_the_configuration_effective_then():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _emp()
        first = add_salary_config(e.id, {"base_salary": 5000000}, date(2025, 1, 1))
        second = add_salary_config(e.id, {"base_salary": 6000000}, date(2025, 7, 1))

        assert salary_as_of(e.id, date(2024, 12, 31)) is None
        assert salary_as_of(e.id, date(2025, 3, 31)).id == first.id
        assert salary_as_of(e.id, date(2025, 6, 30)).id == first.id
        assert salary_as_of(e.id, date(2025, 7, 1)).id == second.id


def test_backdating_and_bad_payloads_are_refused():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _emp()
        add_salary_config(e.id, {"base_salary": 5000000}, date(2025, 7, 1))

        with pytest.raises(ValidationFailed) as ex:
            add_salary_config(e.id, {"base_salary": 6000000}, date(2025, 7, 1))
        assert ex.value.errors[0]["field"] == "effective_date"
        db.session.rollback()

        with pytest.raises(ValidationFailed):
            add_salary_config(e.id, {"base_salary": -5}, date(2025, 8, 1))
        db.session.rollback()

        with pytest.raises(ValidationFailed):
            add_salary_config(9999, {"base_salary": 5000000}, date(2025, 8, 1))
        db.session.rollback()

        assert EmployeeSalary.query.count() == 1


def test_gross_components_sum_allowances():
    cfg = EmployeeSalary(base_salary=Decimal("5000000"), transport_allowance=Decimal("300000"),
                         meal_allowance=Decimal("200000"), position_allowance=Decimal("0"),
                         housing_allowance=Decimal("0"), other_allowances=Decimal("50000"))
    comps = gross_components(cfg)
    assert comps["base_salary"] == Decimal("5000000")
    assert comps["total_allowances"] == Decimal("550000")
