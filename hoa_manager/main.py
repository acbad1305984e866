import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from .api import (
    announcements,
    audit_logs,
    auth,
    dashboard,
    maintenance,
    notifications,
    payments,
    profiles,
    properties,
    reports,
    system,
    transactions,
)
from .auth.jwt import user_id_from_access_token
from .config import Base, SessionLocal, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id, get_request_id
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .services.audit import audit_log
from .services.notifications import notification_center
from .services.payments import mark_overdue_payments, send_payment_reminders

configure_logging(settings.log_level, json_logs=settings.log_json)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.app_env == "production")


def refresh_payment_states(session: Session) -> None:
    overdue = mark_overdue_payments(session)
    reminders = send_payment_reminders(session)
    logger.info("Startup payment sweep: %s marked overdue, %s reminders sent", overdue, reminders)


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    log_security_warnings(settings)
    with SessionLocal() as session:
        refresh_payment_states(session)


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(profiles.router, prefix="/profiles", tags=["profiles"])
app.include_router(properties.router, prefix="/properties", tags=["properties"])
app.include_router(maintenance.router, prefix="/maintenance", tags=["maintenance"])
app.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(announcements.router, prefix="/announcements", tags=["announcements"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
app.include_router(reports.router, prefix="/reports", tags=["reports"])
app.include_router(dashboard.router, tags=["dashboard"])
app.include_router(audit_logs.router)
app.include_router(system.router, prefix="/system", tags=["system"])


@app.middleware("http")
async def audit_trail(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/notifications/ws"):
        return response
    if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return response
    actor_id = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        actor_id = user_id_from_access_token(auth_header.split(" ", 1)[1])
    with SessionLocal() as session:
        audit_log(
            db_session=session,
            actor_user_id=actor_id,
            action=f"{request.method} {request.url.path}",
            target_entity_type="HTTP",
            target_entity_id=request.url.path,
            after={"status": response.status_code, "request_id": get_request_id(request)},
        )
    return response


@app.middleware("http")
async def request_id_header(request: Request, call_next):
    request_id = assign_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.on_event("startup")
async def configure_notification_center() -> None:
    notification_center.configure_loop(asyncio.get_running_loop())


@app.on_event("shutdown")
async def shutdown_notification_center() -> None:
    await notification_center.shutdown()
