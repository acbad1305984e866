from datetime import date, timedelta
from decimal import Decimal
import hashlib
import hmac
import json
import time
from types import SimpleNamespace

from fastapi.testclient import TestClient
import pytest
import stripe

from hoa_manager.api.dependencies import get_db
from hoa_manager.auth.jwt import get_current_profile
from hoa_manager.config import settings
from hoa_manager.main import app
from hoa_manager.models.models import Notification, NotificationPreference, Payment, Transaction
from hoa_manager.services import payments as payment_service

WEBHOOK_SECRET = "whsec_test"


def _override_get_db(session):
    def _inner():
        try:
            yield session
        finally:
            pass

    return _inner


def _override_profile(profile):
    def _inner():
        return profile

    return _inner


def test_marking_paid_records_single_ledger_entry(db_session, create_profile, create_property, create_payment):
    admin = create_profile(email="admin@example.com", role="admin")
    prop = create_property(unit_number="12B")
    payment = create_payment(prop, amount="325.00", payment_type="special_assessment")

    payment_service.transition_status(db_session, admin, payment, "paid", payment_method="check")
    payment_service.transition_status(db_session, admin, payment, "paid")

    entries = db_session.query(Transaction).filter(Transaction.payment_id == payment.id).all()
    assert len(entries) == 1
    entry = entries[0]
    assert entry.type == "income"
    assert entry.category == "special_assessments"
    assert entry.amount == Decimal("325.00")
    assert entry.reference_number == f"PAY-{payment.id}"
    assert entry.description == "Special assessment - Unit 12B"
    assert payment.payment_date == date.today()
    assert payment.payment_method == "check"


def test_paid_and_cancelled_payments_are_terminal(db_session, create_profile, create_property, create_payment):
    admin = create_profile(email="admin@example.com", role="admin")
    prop = create_property()
    paid = create_payment(prop)
    cancelled = create_payment(prop)

    payment_service.transition_status(db_session, admin, paid, "paid")
    payment_service.transition_status(db_session, admin, cancelled, "cancelled")

    with pytest.raises(ValueError):
        payment_service.transition_status(db_session, admin, paid, "pending")
    with pytest.raises(ValueError):
        payment_service.transition_status(db_session, admin, cancelled, "paid")
    assert db_session.query(Transaction).filter(Transaction.payment_id == cancelled.id).count() == 0


def test_owner_may_only_settle_own_open_payment(db_session, create_profile, create_property, create_payment):
    owner = create_profile(email="owner@example.com")
    stranger = create_profile(email="stranger@example.com")
    prop = create_property(owner=owner)
    payment = create_payment(prop)

    with pytest.raises(PermissionError):
        payment_service.transition_status(db_session, stranger, payment, "paid")
    with pytest.raises(PermissionError):
        payment_service.transition_status(db_session, owner, payment, "cancelled")

    payment_service.transition_status(db_session, owner, payment, "paid", payment_method="credit_card")
    assert payment.status == "paid"


def test_list_payments_reports_totals_across_visible_rows(db_session, create_profile, create_property, create_payment):
    owner = create_profile(email="owner@example.com")
    mine = create_property(owner=owner)
    other = create_property()
    create_payment(mine, amount="200.00")
    create_payment(mine, amount="50.00", status="paid")
    create_payment(other, amount="999.00")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(owner)
    client = TestClient(app)
    try:
        response = client.get("/payments/", params={"status": "paid"})
        assert response.status_code == 200
        body = response.json()
        assert len(body["items"]) == 1
        assert Decimal(body["total_outstanding"]) == Decimal("200.00")
        assert Decimal(body["total_paid"]) == Decimal("50.00")
        assert body["items"][0]["unit_number"] == mine.unit_number
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_admin_creates_payment_as_pending(db_session, create_profile, create_property):
    admin = create_profile(email="admin@example.com", role="admin")
    prop = create_property()

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        response = client.post(
            "/payments/",
            json={"property_id": prop.id, "amount": "275.00", "due_date": "2026-12-01"},
        )
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        bad = client.post("/payments/", json={"property_id": prop.id, "amount": "0", "due_date": "2026-12-01"})
        assert bad.status_code == 422
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_overdue_sweep_flips_only_past_due_pending(db_session, create_property, create_payment):
    prop = create_property()
    today = date(2026, 5, 10)
    late = create_payment(prop, due_date=today - timedelta(days=1))
    due_today = create_payment(prop, due_date=today)
    already_paid = create_payment(prop, due_date=today - timedelta(days=3), status="paid")

    assert payment_service.mark_overdue_payments(db_session, today) == 1

    assert late.status == "overdue"
    assert due_today.status == "pending"
    assert already_paid.status == "paid"


def test_payment_read_flags_overdue_pending_rows(db_session, create_property, create_payment):
    prop = create_property()
    payment = create_payment(prop, due_date=date.today() - timedelta(days=2))
    assert payment.is_overdue is True
    payment.status = "overdue"
    assert payment.is_overdue is False


def test_reminders_are_sent_once_per_day(db_session, create_profile, create_property, create_payment):
    owner = create_profile(email="owner@example.com")
    prop = create_property(owner=owner)
    today = date.today()
    create_payment(prop, due_date=today + timedelta(days=3))
    create_payment(prop, due_date=today + timedelta(days=30))
    create_payment(create_property(), due_date=today + timedelta(days=1))

    assert payment_service.send_payment_reminders(db_session, today=today, days_ahead=7) == 1
    assert payment_service.send_payment_reminders(db_session, today=today, days_ahead=7) == 0

    notes = db_session.query(Notification).filter(Notification.user_id == owner.id).all()
    assert len(notes) == 1
    assert notes[0].type == "payment_reminder"
    assert notes[0].title == "Payment due soon"


def test_reminder_skipped_when_owner_opted_out(db_session, create_profile, create_property, create_payment):
    owner = create_profile(email="optout@example.com")
    prefs = db_session.query(NotificationPreference).filter_by(user_id=owner.id).one()
    prefs.payment_reminders = False
    db_session.commit()
    create_payment(create_property(owner=owner), due_date=date.today())

    payment_service.send_payment_reminders(db_session, days_ahead=7)

    assert db_session.query(Notification).count() == 0


def test_checkout_requires_stripe_configuration(db_session, create_profile, create_property, create_payment, monkeypatch):
    owner = create_profile(email="owner@example.com")
    payment = create_payment(create_property(owner=owner))
    monkeypatch.setattr(settings, "stripe_api_key", None, raising=False)

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(owner)
    client = TestClient(app)
    try:
        response = client.post(f"/payments/{payment.id}/checkout")
        assert response.status_code == 503
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_checkout_session_uses_amount_in_cents(db_session, create_profile, create_property, create_payment, monkeypatch):
    owner = create_profile(email="owner@example.com")
    payment = create_payment(create_property(owner=owner), amount="312.45")
    monkeypatch.setattr(settings, "stripe_api_key", "sk_test_123", raising=False)
    captured = {}

    def _fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")

    monkeypatch.setattr(stripe.checkout.Session, "create", _fake_create)

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(owner)
    client = TestClient(app)
    try:
        response = client.post(f"/payments/{payment.id}/checkout")
        assert response.status_code == 200
        assert response.json() == {"session_id": "cs_test_1", "checkout_url": "https://checkout.stripe.test/cs_test_1"}
        assert captured["line_items"][0]["price_data"]["unit_amount"] == 31245
        assert captured["metadata"]["payment_id"] == str(payment.id)
    finally:
        client.close()
        app.dependency_overrides.clear()


def _signed_webhook(event: dict, secret: str = WEBHOOK_SECRET):
    payload = json.dumps(event).encode("utf-8")
    timestamp = int(time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{timestamp}.".encode("utf-8") + payload, hashlib.sha256).hexdigest()
    return payload, {"stripe-signature": f"t={timestamp},v1={signature}", "content-type": "application/json"}


def test_stripe_webhook_settles_payment_idempotently(db_session, create_property, create_payment, monkeypatch):
    payment = create_payment(create_property(), amount="180.00")
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET, raising=False)
    payload, headers = _signed_webhook(
        {
            "id": "evt_1",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_test_1",
                    "object": "checkout.session",
                    "payment_intent": "pi_123",
                    "metadata": {"payment_id": str(payment.id)},
                }
            },
        }
    )

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    client = TestClient(app)
    try:
        for _ in range(2):
            response = client.post("/payments/webhook", content=payload, headers=headers)
            assert response.status_code == 200
            assert response.json() == {"received": True}
    finally:
        client.close()
        app.dependency_overrides.clear()

    db_session.refresh(payment)
    assert payment.status == "paid"
    assert payment.payment_method == "online"
    assert payment.transaction_id == "pi_123"
    ledger = db_session.query(Transaction).filter(Transaction.payment_id == payment.id).all()
    assert len(ledger) == 1
    assert ledger[0].reference_number == "pi_123"


def test_stripe_webhook_rejects_bad_signature(db_session, create_property, create_payment, monkeypatch):
    payment = create_payment(create_property())
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET, raising=False)
    payload, headers = _signed_webhook(
        {
            "id": "evt_2",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_789", "metadata": {"payment_id": str(payment.id)}}},
        },
        secret="whsec_someone_else",
    )

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    client = TestClient(app)
    try:
        response = client.post("/payments/webhook", content=payload, headers=headers)
        assert response.status_code == 400
        db_session.refresh(payment)
        assert payment.status == "pending"
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_webhook_ignores_cancelled_payment(db_session, create_property, create_payment):
    payment = create_payment(create_property(), status="cancelled")
    event = {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_456", "metadata": {"payment_id": str(payment.id)}}},
    }

    payment_service.handle_stripe_event(db_session, event)

    assert db_session.get(Payment, payment.id).status == "cancelled"
    assert db_session.query(Transaction).count() == 0


def test_payment_update_rejects_null_required_fields(db_session, create_profile, create_property, create_payment):
    admin = create_profile(email="admin@example.com", role="admin")
    payment = create_payment(create_property())

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        for body in ({"due_date": None}, {"amount": None}, {"payment_type": None}):
            response = client.patch(f"/payments/{payment.id}", json=body)
            assert response.status_code == 422, body

        notes = client.patch(f"/payments/{payment.id}", json={"notes": None})
        assert notes.status_code == 200
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_paid_payment_type_and_amount_are_locked(db_session, create_profile, create_property, create_payment):
    admin = create_profile(email="admin@example.com", role="admin")
    payment = create_payment(create_property(), payment_type="monthly_dues")
    payment_service.transition_status(db_session, admin, payment, "paid")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        retyped = client.patch(f"/payments/{payment.id}", json={"payment_type": "fine"})
        assert retyped.status_code == 400
        assert "payment_type" in retyped.json()["detail"]

        assert client.patch(f"/payments/{payment.id}", json={"amount": "1.00"}).status_code == 400
        assert client.patch(f"/payments/{payment.id}", json={"notes": "Paid at the office"}).status_code == 200
    finally:
        client.close()
        app.dependency_overrides.clear()

    entry = db_session.query(Transaction).filter(Transaction.payment_id == payment.id).one()
    assert entry.category == "hoa_fees"
