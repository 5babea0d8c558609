"""In-memory sliding-window rate limiting for the API routes.

Single-instance only: counters live in process memory and reset on restart.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from aiohttp import web

logger = logging.getLogger(__name__)

RATE_LIMITER_KEY = "rate_limiter"
MINUTE = 60


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    # Requests per minute per client IP
    per_ip_limit: int = 100

    # Optional burst limit: max requests per burst window (None disables it)
    burst_limit: Optional[int] = None
    burst_window_seconds: int = 10

    # Only paths under this prefix are limited
    path_prefix: str = "/api/"

    cleanup_interval: int = 300


@dataclass
class RateLimitEntry:
    """Request timestamps of one client inside the tracking window."""

    requests: list[float] = field(default_factory=list)


class RateLimiter:
    """Sliding-window limiter keyed by client IP."""

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self.clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = asyncio.Lock()
        self._stats = {"total_requests": 0, "rejected_requests": 0}
        self._cleanup_task: Optional[asyncio.Task[None]] = None

        logger.info(
            "RateLimiter initialized: per_ip=%d/min, burst=%s/%ds",
            self.config.per_ip_limit,
            self.config.burst_limit,
            self.config.burst_window_seconds,
        )

    async def start(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task

    async def check_rate_limit(self, client_ip: str) -> tuple[bool, dict[str, Any]]:
        """Check and, when allowed, record one request from ``client_ip``.

        Returns:
            Tuple of (allowed, info) where info carries ``remaining``,
            ``reset_seconds`` and ``retry_after`` (0 when allowed)
        """
        async with self._lock:
            self._stats["total_requests"] += 1
            now = self.clock()
            entry = self._entries.setdefault(client_ip, RateLimitEntry())
            entry.requests = [ts for ts in entry.requests if ts > now - MINUTE]

            minute_ok, minute_reset = self._window_state(
                entry, self.config.per_ip_limit, MINUTE, now
            )
            burst_ok, burst_reset = True, MINUTE
            if self.config.burst_limit is not None:
                burst_ok, burst_reset = self._window_state(
                    entry, self.config.burst_limit, self.config.burst_window_seconds, now
                )

            allowed = minute_ok and burst_ok
            if allowed:
                entry.requests.append(now)
                retry_after = 0
            else:
                self._stats["rejected_requests"] += 1
                waits = [reset for ok, reset in ((minute_ok, minute_reset), (burst_ok, burst_reset)) if not ok]
                retry_after = max(1, max(waits))
                logger.warning("Rate limit exceeded: ip=%s, retry_after=%ds", client_ip, retry_after)

            return allowed, {
                "remaining": max(0, self.config.per_ip_limit - len(entry.requests)),
                "reset_seconds": minute_reset,
                "retry_after": retry_after,
            }

    @staticmethod
    def _window_state(
        entry: RateLimitEntry, limit: int, window_seconds: int, now: float
    ) -> tuple[bool, int]:
        in_window = [ts for ts in entry.requests if ts > now - window_seconds]
        if not in_window:
            return limit > 0, window_seconds
        reset_seconds = int(window_seconds - (now - min(in_window))) + 1
        return len(in_window) < limit, reset_seconds

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.config.cleanup_interval)
                await self.cleanup_expired_entries()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in rate limiter cleanup loop")

    async def cleanup_expired_entries(self) -> int:
        """Drop clients without requests in the last minute; returns how many."""
        async with self._lock:
            cutoff = self.clock() - MINUTE
            expired = [
                key
                for key, entry in self._entries.items()
                if not entry.requests or max(entry.requests) <= cutoff
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Cleaned up %d expired rate limit entries", len(expired))
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "tracked_ips": len(self._entries),
            "per_ip_limit": self.config.per_ip_limit,
        }


def get_client_ip(request: web.Request) -> str:
    """Client IP, honouring the first X-Forwarded-For hop."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.remote or "unknown"


@web.middleware
async def rate_limit_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Apply ``app["rate_limiter"]`` to API paths; 429 with Retry-After when exceeded."""
    rate_limiter: Optional[RateLimiter] = request.app.get(RATE_LIMITER_KEY)
    if rate_limiter is None or not request.path.startswith(rate_limiter.config.path_prefix):
        return await handler(request)

    client_ip = get_client_ip(request)
    allowed, limit_info = await rate_limiter.check_rate_limit(client_ip)
    if not allowed:
        response = web.json_response(
            {"success": False, "error": "Too many requests. Please slow down."},
            status=429,
        )
        response.headers["Retry-After"] = str(limit_info["retry_after"])
        return response

    response = await handler(request)
    response.headers["X-RateLimit-Limit"] = str(rate_limiter.config.per_ip_limit)
    response.headers["X-RateLimit-Remaining"] = str(limit_info["remaining"])
    return response
