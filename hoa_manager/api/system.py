import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, EmailStr
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_admin
from ..config import settings
from ..core.version import get_version_info
from ..schemas.schemas import SystemHealth
from ..services import email as email_service

logger = logging.getLogger(__name__)

router = APIRouter()


class TestEmailRequest(BaseModel):
    recipient: EmailStr
    subject: Optional[str] = "HOA Manager test email"
    body: Optional[str] = "This is a test email from the HOA management system."


class TestEmailResponse(BaseModel):
    backend: str
    success: bool
    status_code: Optional[int]
    error: Optional[str]


@router.get("/health", response_model=SystemHealth)
def health(db: Session = Depends(get_db)) -> SystemHealth:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return SystemHealth(status="degraded", database="unavailable")
    return SystemHealth(status="ok", database="ok", details={"env": settings.app_env})


@router.get("/version")
def version() -> Dict[str, str]:
    return get_version_info()


@router.get("/runtime", dependencies=[Depends(require_admin)])
def get_runtime_diagnostics() -> Dict[str, Any]:
    """Expose non-sensitive runtime settings for debugging."""
    return {
        "app_env": settings.app_env,
        "email_backend": settings.email_backend,
        "email_host": settings.email_host,
        "email_port": settings.email_port,
        "email_use_tls": settings.email_use_tls,
        "stripe_configured": bool(settings.stripe_api_key),
        "payment_reminder_days": settings.payment_reminder_days,
        "frontend_url": settings.frontend_url,
    }


@router.post("/admin/test-email", response_model=TestEmailResponse, dependencies=[Depends(require_admin)])
def send_test_email(
    payload: TestEmailRequest,
    admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
) -> TestEmailResponse:
    if not settings.admin_token:
        raise HTTPException(status_code=404, detail="Test email endpoint is disabled.")
    if not admin_token or admin_token != settings.admin_token:
        raise HTTPException(status_code=403, detail="Invalid admin token.")

    result = email_service.send_email(
        payload.subject or "HOA Manager test email",
        payload.body or "This is a test email from the HOA management system.",
        [payload.recipient],
    )
    return TestEmailResponse(
        backend=result.backend,
        success=result.delivered,
        status_code=result.status_code,
        error=result.error,
    )
