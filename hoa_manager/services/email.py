import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail

from ..config import settings

logger = logging.getLogger(__name__)

PREFERENCES_FOOTER = "You are receiving this because email notifications are enabled in your HOA portal preferences."


@dataclass
class SendResult:
    backend: str
    status_code: Optional[int]
    error: Optional[str]

    @property
    def delivered(self) -> bool:
        return self.error is None


def _redact(address: str) -> str:
    name, _, domain = address.partition("@")
    if not domain:
        return "***"
    return f"{name[:1]}***@{domain}"


def _unique_recipients(recipients: Iterable[str]) -> List[str]:
    unique: Dict[str, str] = {}
    for address in recipients:
        cleaned = (address or "").strip()
        if cleaned:
            unique.setdefault(cleaned.lower(), cleaned)
    return list(unique.values())


def _sender() -> Tuple[str, str]:
    return str(settings.email_from_address or "no-reply@hoa.local"), settings.email_from_name


def compose_notification_email(title: str, message: str, link_url: Optional[str] = None) -> Tuple[str, str]:
    """Build the subject and plain-text body for a portal notification."""
    subject = f"[{settings.app_name}] {title}"
    lines = [title, "", message]
    if link_url:
        lines += ["", f"View in the portal: {settings.frontend_url.rstrip('/')}/{link_url.lstrip('/')}"]
    lines += ["", "--", PREFERENCES_FOOTER]
    return subject, "\n".join(lines)


def _deliver_local(subject: str, body: str, recipients: List[str]) -> SendResult:
    output_dir = Path(settings.email_output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    slug = "".join(ch if ch.isalnum() else "_" for ch in subject).strip("_")[:60] or "email"
    path = output_dir / f"{stamp}_{slug}.txt"
    path.write_text(f"Subject: {subject}\nRecipients: {', '.join(recipients)}\n\n{body}")
    logger.info("Wrote local email to %s", path)
    return SendResult(backend="local", status_code=200, error=None)


def _deliver_sendgrid(subject: str, body: str, recipients: List[str]) -> SendResult:
    if not settings.sendgrid_api_key:
        raise RuntimeError("SendGrid backend requires SENDGRID_API_KEY.")
    address, name = _sender()
    mail = Mail(
        from_email=Email(email=address, name=name),
        to_emails=recipients,
        subject=subject,
        plain_text_content=body,
    )
    response = SendGridAPIClient(settings.sendgrid_api_key).send(mail)
    return SendResult(backend="sendgrid", status_code=response.status_code, error=None)


def _deliver_smtp(subject: str, body: str, recipients: List[str]) -> SendResult:
    if not settings.email_host:
        raise RuntimeError("SMTP backend requires EMAIL_HOST.")
    address, name = _sender()
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((name, address))
    message["To"] = ", ".join(recipients)
    message.set_content(body)

    with smtplib.SMTP(settings.email_host, settings.email_port) as connection:
        if settings.email_use_tls:
            connection.starttls(context=ssl.create_default_context())
        if settings.email_host_user and settings.email_host_password:
            connection.login(settings.email_host_user, settings.email_host_password)
        connection.send_message(message)
    return SendResult(backend="smtp", status_code=250, error=None)


BACKENDS: Dict[str, Callable[[str, str, List[str]], SendResult]] = {
    "local": _deliver_local,
    "sendgrid": _deliver_sendgrid,
    "smtp": _deliver_smtp,
}


def send_email(subject: str, body: str, recipients: Iterable[str]) -> SendResult:
    """Send a plain-text email through the configured backend.

    Failures are logged and reported on the result; callers never see an
    exception from a broken mail provider.
    """
    backend = (settings.email_backend or "local").strip().strip("'\"").lower()
    addresses = _unique_recipients(recipients)
    if not addresses:
        return SendResult(backend=backend, status_code=None, error="No recipients provided.")

    deliver = BACKENDS.get(backend)
    if deliver is None:
        logger.warning("Unknown EMAIL_BACKEND %r; writing to local files instead.", backend)
        deliver = _deliver_local

    logger.info("Sending email via %s to %s", backend, [_redact(address) for address in addresses])
    try:
        return deliver(subject, body, addresses)
    except Exception as exc:
        logger.exception("Email dispatch failed for backend=%s.", backend)
        return SendResult(backend=backend, status_code=None, error=str(exc))
