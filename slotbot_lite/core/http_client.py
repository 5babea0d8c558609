"""Shared HTTP client manager for slotbot_lite.

Keeps one pooled ``httpx.AsyncClient`` per client id so the calendar fetcher's
per-date and per-calendar fan-out reuses connections instead of opening a new
one for every query.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Global state for shared HTTP clients
_shared_clients: dict[str, httpx.AsyncClient] = {}
_client_lock = asyncio.Lock()

DEFAULT_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
)

# Fixed connect/overall bound on every remote calendar call
DEFAULT_TIMEOUT_SECONDS = 10.0

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "slotbot-lite/0.1",
}


def build_timeout(seconds: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.Timeout:
    return httpx.Timeout(seconds, connect=seconds)


async def _add_correlation_id(request: httpx.Request) -> None:
    """Request hook: forward the current request's correlation ID, if any."""
    from slotbot_lite.api.middleware.correlation_id import get_request_id

    request_id = get_request_id()
    if request_id != "no-request-id":
        request.headers["X-Request-ID"] = request_id


async def get_shared_client(
    client_id: str = "default",
    auth: Optional[httpx.Auth] = None,
    timeout: Optional[httpx.Timeout] = None,
    limits: Optional[httpx.Limits] = None,
) -> httpx.AsyncClient:
    """Get or create a shared HTTP client with connection pooling.

    Args:
        client_id: Identifier for the client (allows multiple clients if needed)
        auth: Authentication applied to every request of a newly created client
        timeout: Custom timeout configuration (defaults to 10s connect/overall)
        limits: Custom connection limits

    Returns:
        Shared httpx.AsyncClient
    """
    async with _client_lock:
        client = _shared_clients.get(client_id)
        if client is None or client.is_closed:
            effective_limits = limits or DEFAULT_LIMITS
            logger.debug(
                "Creating shared HTTP client '%s' with limits: max_connections=%d, max_keepalive=%d",
                client_id,
                effective_limits.max_connections,
                effective_limits.max_keepalive_connections,
            )
            client = httpx.AsyncClient(
                auth=auth,
                limits=effective_limits,
                timeout=timeout or build_timeout(),
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
                event_hooks={"request": [_add_correlation_id]},
            )
            _shared_clients[client_id] = client
            logger.info("Created shared HTTP client '%s'", client_id)

        return client


async def close_all_clients() -> None:
    """Close all shared HTTP clients.

    This should be called during application shutdown to ensure
    proper cleanup of HTTP connections and resources.
    """
    async with _client_lock:
        for client_id, client in _shared_clients.items():
            try:
                if not client.is_closed:
                    await client.aclose()
                    logger.debug("Closed shared HTTP client '%s'", client_id)
            except (httpx.HTTPError, RuntimeError) as e:  # noqa: PERF203
                logger.warning("Error closing shared HTTP client '%s': %s", client_id, e)

        _shared_clients.clear()
        logger.info("All shared HTTP clients closed")
