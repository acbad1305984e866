from sqlalchemy.orm import sessionmaker

from hoa_manager import manage_create_admin as manage
from hoa_manager.models.models import NotificationPreference, Profile


def test_ensure_admin_creates_once(db_session):
    user, created = manage.ensure_admin(db_session, "board@example.com", "boardpass1", "Board Chair")
    db_session.commit()
    again, created_again = manage.ensure_admin(db_session, "BOARD@example.com", "other-pass", "Someone Else")

    assert created is True
    assert created_again is False
    assert again.id == user.id
    profile = db_session.get(Profile, user.id)
    assert profile.role == "admin"
    assert profile.full_name == "Board Chair"
    assert db_session.query(NotificationPreference).filter_by(user_id=user.id).count() == 1


def test_cli_reports_existing_account(db_session, create_profile, monkeypatch, capsys):
    create_profile(email="resident@example.com")
    monkeypatch.setattr(manage, "SessionLocal", sessionmaker(bind=db_session.get_bind()))

    exit_code = manage.main(["--email", "resident@example.com", "--password", "longenough1"])

    assert exit_code == 1
    assert "already exists (role=resident)" in capsys.readouterr().out


def test_cli_rejects_short_password(capsys):
    assert manage.main(["--email", "admin@example.com", "--password", "short"]) == 2
    assert "at least 8 characters" in capsys.readouterr().err


def test_cli_creates_admin(db_session, monkeypatch, capsys):
    monkeypatch.setattr(manage, "SessionLocal", sessionmaker(bind=db_session.get_bind()))

    assert manage.main(["--email", "new.admin@example.com", "--password", "longenough1"]) == 0
    assert "Created admin account" in capsys.readouterr().out
    assert db_session.query(Profile).filter_by(email="new.admin@example.com", role="admin").count() == 1
