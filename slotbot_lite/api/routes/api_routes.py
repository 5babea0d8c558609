"""Booking API routes for slotbot_lite."""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError

from slotbot_lite.api.middleware.csrf import (
    CSRF_HEADER,
    csrf_header_token,
    csrf_tokens_match,
    new_csrf_token,
)
from slotbot_lite.api.models import BookingRequest, BookingResponse, CancelRequest
from slotbot_lite.core.exceptions import (
    BookingNotFoundError,
    BookingParseError,
    RemoteMutationError,
)
from slotbot_lite.domain.booking import BookingService
from slotbot_lite.domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)

RequestModel = TypeVar("RequestModel", bound=BaseModel)


class _RejectedRequest(Exception):
    """Request rejected before reaching the booking service."""

    def __init__(self, status: int, error: str):
        super().__init__(error)
        self.status = status
        self.error = error


def cors_headers(methods: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": f"Content-Type, Authorization, {CSRF_HEADER}",
        "Access-Control-Allow-Credentials": "true",
    }


def _booking_response(status: int, methods: str, **fields: Any) -> web.Response:
    payload = BookingResponse(**fields).to_json()
    return web.json_response(payload, status=status, headers=cors_headers(methods))


async def _read_checked_body(request: web.Request, model: type[RequestModel]) -> RequestModel:
    """Decode the JSON body into ``model`` and enforce the CSRF double submit.

    Raises:
        _RejectedRequest: 403 for CSRF problems, 400 for undecodable bodies
    """
    header_token = csrf_header_token(request)
    if header_token is None:
        raise _RejectedRequest(403, "CSRF token missing")

    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.debug("Invalid JSON body on %s: %s", request.path, e)
        raise _RejectedRequest(400, "Invalid data format") from e

    if not isinstance(data, dict):
        raise _RejectedRequest(400, "Invalid data format")
    try:
        body = model.model_validate(data)
    except ValidationError as e:
        logger.debug("Invalid body on %s: %s", request.path, e)
        raise _RejectedRequest(400, "Invalid data format") from e

    if not csrf_tokens_match(header_token, body.csrf_token):  # type: ignore[attr-defined]
        raise _RejectedRequest(403, "Invalid CSRF token")
    return body


def register_api_routes(
    app: web.Application,
    slot_calculator: SlotCalculator,
    booking_service: BookingService,
) -> None:
    """Register the availability and booking API routes.

    Args:
        app: aiohttp web application
        slot_calculator: Computes the free slot grid
        booking_service: Creates and cancels bookings
    """

    async def csrf_token(_request: web.Request) -> web.Response:
        return web.json_response({"token": new_csrf_token()})

    async def available(_request: web.Request) -> web.Response:
        """Free hourly slots per bookable date."""
        slots = await slot_calculator.compute_availability()
        logger.debug("/api/available returning %d dates", len(slots))
        return web.json_response(slots, headers=cors_headers("GET, OPTIONS"))

    async def book(request: web.Request) -> web.Response:
        methods = "POST, OPTIONS"
        try:
            body = await _read_checked_body(request, BookingRequest)
        except _RejectedRequest as e:
            return _booking_response(e.status, methods, success=False, error=e.error)

        if body.missing_fields():
            return _booking_response(400, methods, success=False, error="All fields are required")

        try:
            code = await booking_service.book(body.date, body.time, body.details())
        except BookingParseError as e:
            return _booking_response(400, methods, success=False, error=str(e))
        except RemoteMutationError as e:
            logger.warning("Error creating booking for %s %s: %s", body.date, body.time, e.reason)
            return _booking_response(
                502, methods, success=False, error=f"Booking creation error: {e.reason}"
            )

        return _booking_response(200, methods, success=True, code=code)

    async def cancel(request: web.Request) -> web.Response:
        methods = "POST, OPTIONS"
        try:
            body = await _read_checked_body(request, CancelRequest)
        except _RejectedRequest as e:
            return _booking_response(e.status, methods, success=False, error=e.error)

        if not body.code:
            return _booking_response(400, methods, success=False, error="Cancellation code missing")

        try:
            await booking_service.cancel(body.code)
        except BookingNotFoundError as e:
            return _booking_response(404, methods, success=False, error=str(e))
        except RemoteMutationError as e:
            logger.warning("Error cancelling booking %s: %s", body.code, e.reason)
            return _booking_response(502, methods, success=False, error="Cancellation error")

        return _booking_response(200, methods, success=True)

    def preflight(methods: str) -> Any:
        async def handler(_request: web.Request) -> web.Response:
            return web.Response(headers=cors_headers(methods))

        return handler

    app.router.add_get("/api/csrf-token", csrf_token)
    app.router.add_get("/api/available", available)
    app.router.add_route("OPTIONS", "/api/available", preflight("GET, OPTIONS"))
    app.router.add_post("/api/booking", book)
    app.router.add_route("OPTIONS", "/api/booking", preflight("POST, OPTIONS"))
    app.router.add_post("/api/cancel", cancel)
    app.router.add_route("OPTIONS", "/api/cancel", preflight("POST, OPTIONS"))

    logger.debug("API routes registered")
