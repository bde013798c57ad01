"""
Rate Limiter - fixed-window request counters kept in process memory.

Three limiters are shared by the whole process: a global one keyed by
client IP, a stricter one for login/registration that only counts failed
attempts, and one for generation routes keyed by account.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from structlog import get_logger

from gateway.config import settings
from gateway.exceptions import RateLimitedError
from gateway.observability.metrics import metrics

logger = get_logger(__name__)

IPV4_MAPPED_PREFIX = "::ffff:"
UNKNOWN_CLIENT = "unknown"


def normalize_ip(ip: str | None) -> str:
    """Collapse IPv4-mapped IPv6 addresses onto their IPv4 form."""
    if not ip:
        return UNKNOWN_CLIENT
    ip = ip.strip()
    if ip.lower().startswith(IPV4_MAPPED_PREFIX):
        return ip[len(IPV4_MAPPED_PREFIX):]
    return ip


@dataclass
class _Window:
    count: int
    reset_at: float  # epoch seconds


@dataclass(frozen=True)
class RateLimitState:
    """Counter state after a successful hit."""

    limit: int
    remaining: int
    reset_at: datetime


class FixedWindowRateLimiter:
    """
    Count requests per key in fixed windows.

    A key's window starts on its first request and lasts window_seconds;
    the request that pushes the count past max_requests is rejected.
    """

    def __init__(
        self,
        name: str,
        window_seconds: int,
        max_requests: int,
        message: str,
        skip_successful_requests: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("Rate limit window and maximum must be positive")
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.message = message
        self.skip_successful_requests = skip_successful_requests
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str) -> RateLimitState:
        """
        Count one request for key.

        Raises:
            RateLimitedError: the window is exhausted
        """
        async with self._lock:
            now = self._clock()
            self._prune(now)
            window = self._windows.get(key)
            if window is None:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[key] = window
            window.count += 1
            count, reset_at = window.count, window.reset_at

        reset_at_dt = datetime.fromtimestamp(reset_at, UTC)
        if count > self.max_requests:
            metrics.record_rate_limited(self.name)
            logger.warning("rate_limited", limiter=self.name, key=key, reset_at=reset_at_dt.isoformat())
            raise RateLimitedError(self.name, reset_at_dt, self.message)

        return RateLimitState(
            limit=self.max_requests,
            remaining=self.max_requests - count,
            reset_at=reset_at_dt,
        )

    async def release(self, key: str) -> None:
        """Undo one counted request in the key's current window."""
        async with self._lock:
            window = self._windows.get(key)
            if window is not None and window.reset_at > self._clock() and window.count > 0:
                window.count -= 1

    @asynccontextmanager
    async def attempt(self, key: str) -> AsyncIterator[RateLimitState]:
        """
        Count a request that may not count if it succeeds.

        With skip_successful_requests set, the hit is released when the
        block exits without an exception.
        """
        state = await self.hit(key)
        yield state
        if self.skip_successful_requests:
            await self.release(key)

    def reset(self) -> None:
        """Forget every window."""
        self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]


global_limiter = FixedWindowRateLimiter(
    name="global",
    window_seconds=settings.rate_limit_window_seconds,
    max_requests=settings.rate_limit_max_requests,
    message="Too many requests from this IP, please try again later.",
)

auth_limiter = FixedWindowRateLimiter(
    name="auth",
    window_seconds=settings.auth_rate_limit_window_seconds,
    max_requests=settings.auth_rate_limit_max_requests,
    message="Too many authentication attempts, please try again later.",
    skip_successful_requests=True,
)

ai_limiter = FixedWindowRateLimiter(
    name="ai",
    window_seconds=settings.ai_rate_limit_window_seconds,
    max_requests=settings.ai_rate_limit_max_requests,
    message="Too many AI requests, please slow down.",
)
