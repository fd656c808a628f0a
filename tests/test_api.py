import os
from datetime import date
from decimal import Decimal

from flask_jwt_extended import create_access_token

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.salary import EmployeeSalary
from payroll_api.services.tax import load_tax_tables


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _auth(app, perms=("payroll.*",), roles=()):
    with app.app_context():
        token = create_access_token(identity="hr-1",
                                    additional_claims={"perms": list(perms), "roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


def _seed(app):
    with app.app_context():
        db.create_all()
        e = Employee(code="E001", email="e1@test.local", full_name="Budi")
        db.session.add(e); db.session.commit()
        db.session.add(EmployeeSalary(employee_id=e.id, effective_date=date(2025, 1, 1),
                                      base_salary=Decimal("5000000")))
        db.session.commit()
        return e.id


def test_requires_token_and_permission():
    app = _mk_app()
    _seed(app)
    c = app.test_client()

    assert c.get("/api/v1/payroll-runs").status_code == 401
    r = c.get("/api/v1/payroll-runs", headers=_auth(app, perms=["attendance.read"]))
    assert r.status_code == 403
    r = c.get("/api/v1/payroll-runs", headers=_auth(app, perms=[], roles=["admin"]))
    assert r.status_code == 200


def test_run_lifecycle_over_http():
    app = _mk_app()
    _seed(app)
    c = app.test_client()
    h = _auth(app)

    r = c.post("/api/v1/payroll-runs", json={"month": 3, "year": 2025}, headers=h)
    assert r.status_code == 201, r.get_json()
    body = r.get_json()
    assert body["success"] is True
    run = body["data"]
    assert run["status"] == "draft"
    assert run["generated_by"] == "hr-1"
    assert run["total_employees"] == 1
    assert body["meta"]["processed"] == 1

    dup = c.post("/api/v1/payroll-runs", json={"month": 3, "year": 2025}, headers=h)
    assert dup.status_code == 409
    assert dup.get_json()["error"]["code"] == "DUPLICATE_PERIOD"

    r = c.get(f"/api/v1/payroll-runs/{run['id']}/details", headers=h)
    assert r.status_code == 200
    rows = r.get_json()["data"]
    assert len(rows) == 1
    assert rows[0]["net_salary"] == 4850000.0
    assert rows[0]["tax"]["resolution"] == "unmapped_status"
    assert r.get_json()["meta"]["total"] == 1

    bad = c.post(f"/api/v1/payroll-runs/{run['id']}/mark-paid", headers=h)
    assert bad.status_code == 409
    assert bad.get_json()["error"]["code"] == "INVALID_TRANSITION"

    r = c.post(f"/api/v1/payroll-runs/{run['id']}/finalize", headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["finalized_by"] == "hr-1"

    r = c.post(f"/api/v1/payroll-runs/{run['id']}/slips-generated", json={}, headers=h)
    assert r.get_json()["data"]["updated"] == 1

    r = c.post(f"/api/v1/payroll-runs/{run['id']}/mark-paid", headers=h)
    assert r.get_json()["data"]["status"] == "paid"

    r = c.get("/api/v1/payroll-runs?status=paid", headers=h)
    assert [x["id"] for x in r.get_json()["data"]] == [run["id"]]

    assert c.get("/api/v1/payroll-runs/9999", headers=h).status_code == 404


def test_create_run_validates_body():
    app = _mk_app()
    _seed(app)
    c = app.test_client()
    h = _auth(app)

    assert c.post("/api/v1/payroll-runs", json={"month": 3}, headers=h).status_code == 422
    r = c.post("/api/v1/payroll-runs", json={"month": 14, "year": 2025}, headers=h)
    assert r.status_code == 422
    assert r.get_json()["error"]["errors"][0]["field"] == "month"


def test_overtime_preview_and_submit():
    app = _mk_app()
    emp_id = _seed(app)
    c = app.test_client()
    h = _auth(app)

    r = c.post("/api/v1/overtime/calculate",
               json={"start_time": "17:00", "end_time": "20:00", "base_hourly_rate": 100000, "is_holiday": False},
               headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["overtime_pay"] == 500000.0

    r = c.post("/api/v1/overtime/calculate",
               json={"start_time": "20:00", "end_time": "18:00", "base_hourly_rate": 100000},
               headers=h)
    assert r.status_code == 422
    assert r.get_json()["error"]["message"] == "End time must be later than start time"

    r = c.post("/api/v1/overtime",
               json={"employee_id": emp_id, "date": "2025-03-05", "start_time": "18:00", "end_time": "20:00"},
               headers=h)
    assert r.status_code == 201
    req = r.get_json()["data"]
    assert req["status"] == "pending"

    r = c.post(f"/api/v1/overtime/{req['id']}/approve", headers=h)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["status"] == "approved"
    # 5,000,000 / 173 -> 28,902/h; 2 h x 1.5
    assert data["calculated_overtime_pay"] == 86706.0

    r = c.post(f"/api/v1/overtime/{req['id']}/reject", json={"reason": "late"}, headers=h)
    assert r.status_code == 409


def test_salary_endpoints():
    app = _mk_app()
    emp_id = _seed(app)
    c = app.test_client()
    h = _auth(app)

    r = c.post(f"/api/v1/employees/{emp_id}/salary",
               json={"base_salary": 6000000, "effective_date": "2025-07-01", "ptkp_status": "K/1"},
               headers=h)
    assert r.status_code == 201
    assert r.get_json()["data"]["is_active"] is True

    r = c.post(f"/api/v1/employees/{emp_id}/salary",
               json={"base_salary": 0, "effective_date": "2025-08-01"}, headers=h)
    assert r.status_code == 422

    r = c.get(f"/api/v1/employees/{emp_id}/salary", headers=h)
    assert len(r.get_json()["data"]) == 2

    r = c.get(f"/api/v1/employees/{emp_id}/salary/as-of?date=2025-03-31", headers=h)
    assert r.get_json()["data"]["base_salary"] == 5000000.0
    r = c.get(f"/api/v1/employees/{emp_id}/salary/as-of?date=2024-01-01", headers=h)
    assert r.status_code == 404


def test_summaries_and_tax_preview():
    app = _mk_app()
    emp_id = _seed(app)
    with app.app_context():
        load_tax_tables({
            "mappings": [{"ptkp_status": "TK/0", "ter_category": "A"}],
            "rates": [{"category_code": "A", "min_gross_income": 6750001, "max_gross_income": 7500000,
                       "rate_percentage": "0.0125"}],
        })
    c = app.test_client()
    h = _auth(app)

    r = c.post("/api/v1/attendance-summaries/generate", json={"month": 3, "year": 2025}, headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"][0]["employee_id"] == emp_id
    assert r.get_json()["data"][0]["total_working_days"] == 21

    r = c.get("/api/v1/attendance-summaries?month=3&year=2025", headers=h)
    assert r.get_json()["meta"]["total"] == 1

    r = c.get("/api/v1/tax/ter/preview?gross=7000000&ptkp_status=TK/0", headers=h)
    data = r.get_json()["data"]
    assert data["status"] == "resolved"
    assert data["withholding"] == 87500.0

    r = c.get("/api/v1/tax/ter/preview?gross=7000000&ptkp_status=K/3", headers=h)
    assert r.get_json()["data"]["status"] == "unmapped_status"


def test_non_finite_numbers_are_rejected_with_422():
    app = _mk_app()
    _seed(app)
    c = app.test_client()
    h = _auth(app)

    r = c.post("/api/v1/overtime/calculate",
               json={"start_time": "08:00", "end_time": "10:00", "base_hourly_rate": "NaN"},
               headers=h)
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "OVERTIME_INVALID"

    r = c.post("/api/v1/overtime/calculate",
               json={"start_time": "08:00", "end_time": "10:00", "monthly_salary": "abc"},
               headers=h)
    assert r.status_code == 422

    for gross in ("NaN", "inf", "abc"):
        r = c.get(f"/api/v1/tax/ter/preview?gross={gross}&ptkp_status=TK/0", headers=h)
        assert r.status_code == 422


def test_summary_period_uses_the_run_period_range():
    app = _mk_app()
    _seed(app)
    c = app.test_client()
    h = _auth(app)

    r = c.post("/api/v1/attendance-summaries/generate", json={"month": 3, "year": 1999}, headers=h)
    assert r.status_code == 422
    assert r.get_json()["error"]["message"] == "year must be 2000..2100"

    r = c.post("/api/v1/payroll-runs", json={"month": 3, "year": 1999}, headers=h)
    assert r.status_code == 422
    assert r.get_json()["error"]["errors"][0]["field"] == "year"
