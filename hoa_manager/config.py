# hoa_manager/config.py
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import EmailStr, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- App ---
    app_name: str = "HOA Manager"
    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # --- Database ---
    database_url: str = "sqlite:///./hoa_dev.db"

    # --- Security / JWT ---
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 8  # 8 hours
    refresh_token_expire_minutes: int = 60 * 24 * 14  # 14 days
    login_rate_limit: int = 10
    login_rate_window_seconds: int = 60

    # --- CORS / URLs ---
    cors_origins: List[str] = ["http://localhost:5173"]
    frontend_url: str = "http://localhost:5173"

    # --- Email ---
    email_backend: str = "local"
    sendgrid_api_key: Optional[str] = None
    email_host: Optional[str] = None
    email_port: int = 587
    email_host_user: Optional[str] = None
    email_host_password: Optional[str] = None
    email_use_tls: bool = True
    email_from_address: Optional[EmailStr] = None
    email_from_name: str = "HOA Management"
    email_output_dir: str = "uploads/emails"

    # --- Payments ---
    stripe_api_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    payment_currency: str = "usd"
    payment_reminder_days: int = Field(7, ge=0)

    # --- Admin diagnostics ---
    admin_token: Optional[str] = None

    @field_validator("email_backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: Optional[str]) -> str:
        return (value or "local").strip().strip("'\"").lower()

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
