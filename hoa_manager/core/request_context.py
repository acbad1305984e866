import logging
import re
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"

# Inbound IDs end up in logs and response headers.
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

_current_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def assign_request_id(request: Request) -> str:
    """Adopt the caller's request ID when it is well formed, otherwise mint one."""
    candidate = request.headers.get(REQUEST_ID_HEADER) or request.headers.get(CORRELATION_ID_HEADER)
    if not candidate or not _SAFE_REQUEST_ID.match(candidate):
        candidate = uuid.uuid4().hex
    request.state.request_id = candidate
    _current_request_id.set(candidate)
    return candidate


def get_request_id(request: Optional[Request] = None) -> Optional[str]:
    if request is not None:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            return request_id
    return _current_request_id.get()


class RequestIdFilter(logging.Filter):
    """Stamp every log record with the active request ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _current_request_id.get() or "-"
        return True
