from fastapi.testclient import TestClient

from hoa_manager.api.dependencies import get_db
from hoa_manager.auth.jwt import create_access_token, get_current_profile
from hoa_manager.main import app
from hoa_manager.models.models import Notification, NotificationPreference, User
from hoa_manager.services import notifications as notification_service


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


def test_list_notifications_returns_only_current_user_items(db_session, create_profile):
    profile = create_profile(email="notify@example.com")
    other = create_profile(email="other@example.com")
    note_one = Notification(user_id=profile.id, title="Test", message="Body", type="system")
    note_two = Notification(user_id=profile.id, title="Another", message="Body", type="announcement")
    note_other = Notification(user_id=other.id, title="Hidden", message="Body", type="system")
    db_session.add_all([note_one, note_two, note_other])
    db_session.commit()

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(profile)
    client = TestClient(app)
    try:
        response = client.get("/notifications/")
        assert response.status_code == 200
        returned_ids = {item["id"] for item in response.json()}
        assert returned_ids == {note_one.id, note_two.id}

        filtered = client.get("/notifications/", params={"type": "announcement"}).json()
        assert [item["id"] for item in filtered] == [note_two.id]

        assert client.get("/notifications/unread-count").json() == {"count": 2}
        assert client.delete(f"/notifications/{note_other.id}").status_code == 404
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_mark_read_and_read_all(db_session, create_profile):
    profile = create_profile(email="reader@example.com")
    first = Notification(user_id=profile.id, title="First", message="Body", type="system")
    second = Notification(user_id=profile.id, title="Second", message="Body", type="system")
    third = Notification(user_id=profile.id, title="Third", message="Body", type="system")
    db_session.add_all([first, second, third])
    db_session.commit()

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(profile)
    client = TestClient(app)
    try:
        response = client.post(f"/notifications/{first.id}/read")
        assert response.status_code == 200
        assert response.json()["is_read"] is True
        assert response.json()["read_at"] is not None

        response = client.post("/notifications/read-all")
        assert response.json() == {"updated": 2}
        assert client.get("/notifications/unread-count").json() == {"count": 0}
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_create_notification_honours_preferences(db_session, create_profile):
    keen = create_profile(email="keen@example.com")
    muted = create_profile(email="muted@example.com")
    prefs = db_session.query(NotificationPreference).filter_by(user_id=muted.id).one()
    prefs.announcements = False
    db_session.commit()

    created = notification_service.create_notification(
        db_session,
        title="Pool closed",
        message="Closed for resurfacing.",
        notification_type="announcement",
        user_ids=[keen.id, muted.id],
    )
    db_session.commit()

    assert [note.user_id for note in created] == [keen.id]


def test_inactive_profiles_receive_nothing(db_session, create_profile):
    profile = create_profile(email="gone@example.com")
    db_session.get(User, profile.id).is_active = False
    db_session.commit()

    created = notification_service.create_notification(
        db_session,
        title="Hello",
        message="Anyone?",
        role_names=["resident"],
    )
    assert created == []


def test_email_copy_written_when_opted_in(db_session, create_profile, tmp_path):
    profile = create_profile(email="mailme@example.com")
    prefs = db_session.query(NotificationPreference).filter_by(user_id=profile.id).one()
    prefs.email_notifications = True
    db_session.commit()

    notification_service.create_notification(
        db_session,
        title="Dues posted",
        message="March dues are available.",
        notification_type="system",
        user_ids=[profile.id],
    )

    written = list((tmp_path / "emails").glob("*.txt"))
    assert len(written) == 1
    assert "Recipients: mailme@example.com" in written[0].read_text()


def test_preferences_endpoint_round_trip(db_session, create_profile):
    profile = create_profile(email="prefs@example.com")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(profile)
    client = TestClient(app)
    try:
        current = client.get("/notifications/preferences").json()
        assert current["push_notifications"] is True

        updated = client.put("/notifications/preferences", json={"maintenance_updates": False})
        assert updated.status_code == 200
        assert updated.json()["maintenance_updates"] is False
        assert updated.json()["payment_reminders"] is True
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_broadcast_requires_an_audience(db_session, create_profile):
    admin = create_profile(email="admin@example.com", role="admin")
    create_profile(email="r1@example.com")
    create_profile(email="r2@example.com")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_profile] = _override_profile(admin)
    client = TestClient(app)
    try:
        missing = client.post("/notifications/broadcast", json={"title": "Hi", "message": "All"})
        assert missing.status_code == 422

        sent = client.post(
            "/notifications/broadcast",
            json={"title": "Water shutoff", "message": "Tuesday 9-11am", "roles": ["resident"]},
        )
        assert sent.status_code == 200
        assert sent.json() == {"created": 2}
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_websocket_greets_authenticated_profile(db_session, create_profile):
    profile = create_profile(email="socket@example.com")
    token = create_access_token({"sub": str(profile.id)})

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    client = TestClient(app)
    try:
        with client.websocket_connect(f"/notifications/ws?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "notification.connected"}
    finally:
        client.close()
        app.dependency_overrides.clear()
