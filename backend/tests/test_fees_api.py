import pytest
from fastapi.testclient import TestClient
from jose import jwt

from tuition.api.v1.endpoints.fees import get_fee_db
from tuition.core.config import settings
from tuition.main import app


def _token(role="accountant"):
    return jwt.encode(
        {"user_id": "u-1", "role": role, "full_name": "Mona Accountant", "type": "access"},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def _headers(role="accountant"):
    return {"Authorization": f"Bearer {_token(role)}"}


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_db(client):
    def _use(db):
        app.dependency_overrides[get_fee_db] = lambda: db
        return db
    return _use


SETUP_BODY = {
    "student_id": "stu-9",
    "fee_profile": {"total_amount": "19500", "installment_count": 3, "advance_payment": "0"},
    "discount": {
        "type": "sibling-second", "amount": "500", "applied": True,
        "applied_type": "sibling-second", "applied_amount": "500",
        "base_amount_before_discount": "20000",
    },
    "other_expenses": [{"expense_type": "Lab fee", "quantity": 1, "total_price": "250"}],
    "optional_expenses": {"books": {"enabled": True, "fields": {"quantity": 2}}},
}


def test_preview_installments(client):
    resp = client.post(
        "/api/v1/fees/installments/preview",
        json={"total_amount": "1000", "installment_count": 3},
        headers=_headers(),
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [i["amount"] for i in data["installments"]] == ["333.00", "333.00", "334.00"]
    assert data["mismatch"] is False


def test_preview_requires_a_token(client):
    resp = client.post("/api/v1/fees/installments/preview", json={"total_amount": "1000"})

    assert resp.status_code in (401, 403)


def test_preview_optional_expenses(client):
    resp = client.post(
        "/api/v1/fees/optional-expenses/preview",
        json={
            "transportation": {"enabled": True, "fields": {"monthly_price": 500, "months": 2}},
            "books": {"enabled": True, "fields": {"price": 200, "quantity": 1}},
        },
        headers=_headers(),
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["grand_total"] == "1200.00"


def test_preview_optional_expenses_rejects_bad_field(client):
    resp = client.post(
        "/api/v1/fees/optional-expenses/preview",
        json={"books": {"enabled": True, "fields": {"price": -1}}},
        headers=_headers(),
    )

    assert resp.status_code == 422
    assert resp.json()["success"] is False


def test_preview_discount(client):
    resp = client.post(
        "/api/v1/fees/discounts/preview",
        json={"current_total": "300", "discount_amount": "500"},
        headers=_headers(),
    )

    data = resp.json()["data"]
    assert data["new_total"] == "0.00"
    assert data["absorbed_excess"] == "200.00"


def test_setup_saves_and_reports_warnings(client, use_db, make_db):
    db = use_db(make_db(fail_on={"financial_transactions"}))

    resp = client.post("/api/v1/fees/setup", json=SETUP_BODY, headers=_headers())

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert len(body["warnings"]) == 1
    assert db.tables["school_fees"][0]["total_amount"] == 20000.0
    assert len(db.tables["fee_installments"]) == 3
    activity = db.tables["activity_logs"][0]
    assert activity["user_id"] == "u-1"
    assert activity["metadata"]["committed_by"] == "Mona Accountant"


def test_setup_fails_when_installments_cannot_be_saved(client, use_db, make_db):
    db = use_db(make_db(fail_on={"fee_installments"}))

    resp = client.post("/api/v1/fees/setup", json=SETUP_BODY, headers=_headers())

    assert resp.status_code == 502
    assert not db.touched("other_expenses")


def test_setup_without_active_year(client, use_db, make_db):
    use_db(make_db(active_year=None))

    resp = client.post("/api/v1/fees/setup", json=SETUP_BODY, headers=_headers())

    assert resp.status_code == 409


def test_setup_is_limited_to_finance_roles(client, use_db, make_db):
    use_db(make_db())

    resp = client.post("/api/v1/fees/setup", json=SETUP_BODY, headers=_headers(role="teacher"))

    assert resp.status_code == 403


def test_setup_reads_discount_from_legacy_trail(client, use_db, make_db):
    db = use_db(make_db())
    body = {k: v for k, v in SETUP_BODY.items() if k != "discount"}
    body["audit_log"] = [
        {"action": "تطبيق خصم 500 جنيه - نوع: brother-second", "timestamp": "2025-09-01", "user": "old-ui"},
    ]

    resp = client.post("/api/v1/fees/setup", json=body, headers=_headers())

    assert resp.status_code == 201
    assert db.tables["school_fees"][0]["total_amount"] == 20000.0
    assert db.tables["financial_transactions"][0]["amount"] == 500.0


def test_setup_accepts_discount_types_from_the_old_form(client, use_db, make_db):
    db = use_db(make_db())
    body = dict(SETUP_BODY)
    body["discount"] = {**SETUP_BODY["discount"], "type": "brother-second", "applied_type": "employee-children"}

    resp = client.post("/api/v1/fees/setup", json=body, headers=_headers())

    assert resp.status_code == 201
    assert db.tables["financial_transactions"][0]["amount"] == 500.0


def test_optional_preview_rejects_non_numbers(client):
    for bad in ("NaN", "Infinity", "abc"):
        resp = client.post(
            "/api/v1/fees/optional-expenses/preview",
            json={"books": {"enabled": True, "fields": {"price": bad}}},
            headers=_headers(),
        )

        assert resp.status_code == 422
        assert resp.json()["detail"] == "validation_error"
