from fastapi.testclient import TestClient
import pytest

from hoa_manager.api.dependencies import get_db
from hoa_manager.auth.jwt import get_current_profile
from hoa_manager.main import app
from hoa_manager.models.models import Payment, Transaction, User
from hoa_manager.services import access


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


def test_resident_sees_only_owned_properties(db_session, create_profile, create_property):
    resident = create_profile(email="owner@example.com")
    mine = create_property(owner=resident)
    create_property()

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(resident)
    client = TestClient(app)
    try:
        response = client.get("/properties/")
        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [mine.id]

        hidden = client.get(f"/properties/{mine.id + 1}")
        assert hidden.status_code == 404
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_resident_without_properties_sees_no_ledger_or_payments(db_session, create_profile, create_property, create_payment, create_transaction):
    resident = create_profile(email="tenant@example.com")
    prop = create_property()
    create_payment(prop)
    create_transaction(property_id=prop.id)

    assert access.scope_payments(db_session.query(Payment), db_session, resident).count() == 0
    assert access.scope_transactions(db_session.query(Transaction), db_session, resident).count() == 0


def test_admin_only_routes_reject_residents(db_session, create_profile):
    resident = create_profile(email="resident@example.com")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(resident)
    client = TestClient(app)
    try:
        assert client.get("/profiles/").status_code == 403
        assert client.post("/properties/", json={"unit_number": "9", "address": "9 Elm"}).status_code == 403
        assert client.get("/reports/financial").status_code == 403
        assert client.get("/audit-logs/").status_code == 403
        assert client.post("/announcements/", json={"title": "Hi", "content": "There"}).status_code == 403
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_resident_can_only_view_own_profile(db_session, create_profile):
    resident = create_profile(email="me@example.com")
    other = create_profile(email="them@example.com")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(resident)
    client = TestClient(app)
    try:
        assert client.get(f"/profiles/{resident.id}").status_code == 200
        assert client.get(f"/profiles/{other.id}").status_code == 403
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_last_admin_cannot_be_demoted_or_deactivated(db_session, create_profile):
    admin = create_profile(email="solo-admin@example.com", role="admin")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        demote = client.patch(f"/profiles/{admin.id}/role", json={"role": "resident"})
        assert demote.status_code == 400
        deactivate = client.post(f"/profiles/{admin.id}/deactivate")
        assert deactivate.status_code == 400

        second = create_profile(email="second-admin@example.com", role="admin")
        demote = client.patch(f"/profiles/{second.id}/role", json={"role": "resident"})
        assert demote.status_code == 200
        assert demote.json()["role"] == "resident"
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_deactivated_profile_is_reported_inactive(db_session, create_profile):
    admin = create_profile(email="admin@example.com", role="admin")
    resident = create_profile(email="leaving@example.com")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        response = client.post(f"/profiles/{resident.id}/deactivate")
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert db_session.get(User, resident.id).is_active is False
    finally:
        client.close()
        app.dependency_overrides.clear()


@pytest.mark.parametrize(
    "fields, allowed",
    [
        ({"title", "description", "priority"}, True),
        ({"status"}, False),
        ({"actual_cost"}, False),
        ({"assigned_vendor", "title"}, False),
    ],
)
def test_resident_maintenance_field_restrictions(create_profile, fields, allowed):
    resident = create_profile(email="fields@example.com")
    if allowed:
        access.check_maintenance_fields(resident, fields)
    else:
        with pytest.raises(PermissionError):
            access.check_maintenance_fields(resident, fields)
