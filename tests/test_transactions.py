from decimal import Decimal

from fastapi.testclient import TestClient
import pytest

from hoa_manager.api.dependencies import get_db
from hoa_manager.auth.jwt import get_current_profile
from hoa_manager.main import app
from hoa_manager.models.models import AuditLog
from hoa_manager.services import transactions as ledger


def _override_get_db(session):
    def _generator():
        try:
            yield session
        finally:
            pass

    return _generator


def _override_profile(profile):
    def _provider():
        return profile

    return _provider


def test_category_must_match_type():
    ledger.validate_category("income", "hoa_fees")
    ledger.validate_category("expense", "insurance")
    with pytest.raises(ValueError):
        ledger.validate_category("income", "insurance")
    with pytest.raises(ValueError):
        ledger.validate_category("refund", "hoa_fees")


def test_amount_must_be_positive():
    assert ledger.validate_amount("12.345") == Decimal("12.35")
    with pytest.raises(ValueError):
        ledger.validate_amount("0")


def test_admin_records_and_lists_ledger_with_totals(db_session, create_profile):
    admin = create_profile(email="admin@example.com", role="admin")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        income = client.post(
            "/transactions/",
            json={"type": "income", "category": "facility_rental", "amount": "300.00", "transaction_date": "2026-02-01"},
        )
        assert income.status_code == 201
        assert income.json()["created_by"] == admin.id

        expense = client.post(
            "/transactions/",
            json={"type": "expense", "category": "utilities", "amount": "120.50", "transaction_date": "2026-02-03"},
        )
        assert expense.status_code == 201

        mismatched = client.post(
            "/transactions/",
            json={"type": "income", "category": "utilities", "amount": "10.00"},
        )
        assert mismatched.status_code == 400

        listing = client.get("/transactions/")
        body = listing.json()
        assert [item["category"] for item in body["items"]] == ["utilities", "facility_rental"]
        assert Decimal(body["total_income"]) == Decimal("300.00")
        assert Decimal(body["total_expenses"]) == Decimal("120.50")
        assert Decimal(body["balance"]) == Decimal("179.50")

        only_income = client.get("/transactions/", params={"type": "income"}).json()
        assert len(only_income["items"]) == 1
    finally:
        client.close()
        app.dependency_overrides.clear()

    actions = {row.action for row in db_session.query(AuditLog).all()}
    assert "transaction.create" in actions


def test_update_revalidates_category(db_session, create_profile, create_transaction):
    admin = create_profile(email="admin@example.com", role="admin")
    entry = create_transaction(transaction_type="income", category="hoa_fees")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        bad = client.patch(f"/transactions/{entry.id}", json={"type": "expense"})
        assert bad.status_code == 400

        good = client.patch(f"/transactions/{entry.id}", json={"type": "expense", "category": "repairs"})
        assert good.status_code == 200
        assert good.json()["category"] == "repairs"

        assert client.delete(f"/transactions/{entry.id}").status_code == 204
        assert client.get("/transactions/").json()["items"] == []
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_resident_sees_ledger_for_owned_property_only(db_session, create_profile, create_property, create_transaction):
    owner = create_profile(email="owner@example.com")
    mine = create_property(owner=owner)
    create_transaction(property_id=mine.id, amount="250.00")
    create_transaction(amount="9999.00")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(owner)
    client = TestClient(app)
    try:
        body = client.get("/transactions/").json()
        assert len(body["items"]) == 1
        assert Decimal(body["total_income"]) == Decimal("250.00")
        assert client.post("/transactions/", json={"type": "income", "category": "fines", "amount": "5"}).status_code == 403
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_update_rejects_null_required_fields(db_session, create_profile, create_transaction):
    admin = create_profile(email="admin@example.com", role="admin")
    entry = create_transaction(description="Dues")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        for body in ({"amount": None}, {"type": None}, {"category": None}, {"transaction_date": None}):
            response = client.patch(f"/transactions/{entry.id}", json=body)
            assert response.status_code == 422, body

        cleared = client.patch(f"/transactions/{entry.id}", json={"description": None})
        assert cleared.status_code == 200
        assert Decimal(cleared.json()["amount"]) == Decimal("100.00")
    finally:
        client.close()
        app.dependency_overrides.clear()
