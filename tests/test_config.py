from hoa_manager.config import Settings
from hoa_manager.core.security import insecure_settings


def test_settings_read_environment_overrides(monkeypatch):
    monkeypatch.setenv("PAYMENT_REMINDER_DAYS", "3")
    monkeypatch.setenv("CORS_ORIGINS", '["https://portal.example.com"]')
    monkeypatch.setenv("EMAIL_BACKEND", "sendgrid")

    settings = Settings(_env_file=None)

    assert settings.payment_reminder_days == 3
    assert settings.cors_origins == ["https://portal.example.com"]
    assert settings.email_backend == "sendgrid"


def test_settings_defaults_are_safe_for_local_development(monkeypatch):
    for name in ("DATABASE_URL", "STRIPE_API_KEY", "EMAIL_BACKEND", "ADMIN_TOKEN"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.database_url.startswith("sqlite:///")
    assert settings.email_backend == "local"
    assert settings.stripe_api_key is None
    assert settings.admin_token is None
    assert settings.payment_currency == "usd"


def test_insecure_settings_flags_production_hazards():
    settings = Settings(
        _env_file=None,
        app_env="production",
        jwt_secret="dev-secret-please-change",
        cors_origins=["*"],
        email_backend="smtp",
        stripe_api_key="sk_live_123",
        stripe_webhook_secret=None,
        database_url="sqlite:///./prod.db",
    )

    problems = insecure_settings(settings)

    assert len(problems) == 4
    assert any("JWT_SECRET" in problem for problem in problems)
    assert any("STRIPE_WEBHOOK_SECRET" in problem for problem in problems)


def test_hardened_settings_raise_no_warnings():
    settings = Settings(
        _env_file=None,
        app_env="production",
        jwt_secret="a-long-random-secret",
        cors_origins=["https://portal.example.com"],
        email_backend="sendgrid",
        database_url="postgresql://hoa@db/hoa",
    )

    assert insecure_settings(settings) == []
