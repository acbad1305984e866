import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """In-process attempt counter keyed by an arbitrary string."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._attempts: Dict[str, Deque[float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def acquire(self, key: str, limit: int, window_seconds: int) -> Optional[float]:
        """Record an attempt; return seconds to wait when the key is over its limit."""
        now = self._clock()
        async with self._lock:
            attempts = self._attempts.setdefault(key, deque())
            while attempts and now - attempts[0] >= window_seconds:
                attempts.popleft()
            if len(attempts) >= limit:
                return window_seconds - (now - attempts[0])
            attempts.append(now)
            return None

    def clear(self, key: str) -> None:
        self._attempts.pop(key, None)

    def reset(self) -> None:
        self._attempts.clear()


limiter = SlidingWindowLimiter()


def credential_throttle(
    scope: str,
    limit: Callable[[], int],
    window_seconds: Callable[[], int],
) -> Callable[[Request], Awaitable[str]]:
    """Build a dependency that throttles credential posts per client and account.

    The dependency returns its limiter key so the endpoint can clear it once the
    credentials check out.
    """

    async def dependency(request: Request) -> str:
        form = await request.form()
        account = str(form.get("username") or "").strip().lower()
        client_ip = request.client.host if request.client else "anonymous"
        key = f"{scope}:{client_ip}:{account}"

        window = window_seconds()
        retry_after = await limiter.acquire(key, limit(), window)
        if retry_after is not None:
            logger.warning("Throttled %s attempt for client=%s", scope, client_ip)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many attempts. Try again later.",
                headers={"Retry-After": str(max(1, int(retry_after)))},
            )
        return key

    return dependency
