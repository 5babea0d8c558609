"""Request correlation ID middleware.

The ID is taken from the client (``X-Request-ID`` / ``X-Correlation-ID``)
or generated, stored in a context variable for log records and outgoing
CalDAV requests, and echoed back in the response headers.
"""

import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

from aiohttp import web

NO_REQUEST_ID = "no-request-id"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@web.middleware
async def correlation_id_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Extract or generate the correlation ID and attach it to the response."""
    correlation_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid.uuid4())
    )

    token = request_id_var.set(correlation_id)
    request["correlation_id"] = correlation_id
    try:
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers["X-Request-ID"] = correlation_id
            raise
        response.headers["X-Request-ID"] = correlation_id
        return response
    finally:
        request_id_var.reset(token)


def get_request_id() -> str:
    """Current request correlation ID, or "no-request-id" outside a request."""
    request_id = request_id_var.get()
    return request_id if request_id else NO_REQUEST_ID
