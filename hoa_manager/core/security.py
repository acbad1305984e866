import logging
from typing import Iterable, List, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import Settings

logger = logging.getLogger(__name__)

DEFAULT_API_CSP = "default-src 'none'; frame-ancestors 'none'"
NO_STORE_PREFIXES = ("/auth", "/payments", "/reports")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Harden JSON API responses; token, billing and report paths are ``no-store``."""

    def __init__(
        self,
        app,
        *,
        enable_hsts: bool = False,
        csp: Optional[str] = DEFAULT_API_CSP,
        no_store_prefixes: Iterable[str] = NO_STORE_PREFIXES,
    ) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.csp = csp
        self.no_store_prefixes = tuple(no_store_prefixes)

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        headers = response.headers

        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Referrer-Policy", "no-referrer")
        if self.csp and not request.url.path.startswith(("/docs", "/redoc")):
            headers.setdefault("Content-Security-Policy", self.csp)
        if self.enable_hsts:
            headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        if request.url.path.startswith(self.no_store_prefixes):
            headers["Cache-Control"] = "no-store"

        return response


def insecure_settings(config: Settings) -> List[str]:
    """List configuration that is unsafe outside local development."""
    problems: List[str] = []
    if config.jwt_secret == "dev-secret-please-change":
        problems.append("JWT secret is using the insecure default; set JWT_SECRET.")
    if "*" in config.cors_origins:
        problems.append("CORS allows any origin while bearer tokens are accepted.")
    if (config.email_backend or "local").strip().lower() == "local":
        problems.append("Email backend is the local file writer; notification emails will not be delivered.")
    if config.stripe_api_key and not config.stripe_webhook_secret:
        problems.append("Stripe is configured without STRIPE_WEBHOOK_SECRET; checkout payments will never settle.")
    if config.database_url.startswith("sqlite") and config.app_env == "production":
        problems.append("SQLite is in use for a production deployment.")
    return problems


def log_security_warnings(config: Settings) -> None:
    for problem in insecure_settings(config):
        logger.warning(problem)
    if not config.stripe_api_key:
        logger.info("Stripe API key is not configured; online dues payments are disabled.")
