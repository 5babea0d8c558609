"""slotbot_lite HTTP server.

Wires the availability engine and booking lifecycle to an aiohttp
application and runs it until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
from aiohttp import web

from slotbot_lite.api.middleware import (
    RateLimitConfig,
    RateLimiter,
    correlation_id_middleware,
    rate_limit_middleware,
)
from slotbot_lite.api.middleware.rate_limiter import RATE_LIMITER_KEY
from slotbot_lite.api.routes import register_api_routes, register_static_routes
from slotbot_lite.calendar.lite_caldav_client import LiteCalDAVClient
from slotbot_lite.config_loader import Config, load_config
from slotbot_lite.core.config_manager import ConfigManager
from slotbot_lite.core.exceptions import ConfigError
from slotbot_lite.core.http_client import build_timeout, close_all_clients, get_shared_client
from slotbot_lite.domain.availability_cache import AvailabilityCache
from slotbot_lite.domain.booking import BookingLedger, BookingService, BookingSettings
from slotbot_lite.domain.calendar_fetcher import CalendarFetcher, normalize_calendars
from slotbot_lite.domain.protocols import CalendarStore
from slotbot_lite.domain.slot_calculator import SlotCalculator, SlotSettings

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_STATIC_DIR = PACKAGE_DIR / "static"
CALDAV_CLIENT_ID = "caldav"


@dataclass
class Services:
    """Engine instances shared by the request handlers of one app."""

    store: CalendarStore
    fetcher: CalendarFetcher
    cache: AvailabilityCache
    slot_calculator: SlotCalculator
    ledger: BookingLedger
    booking_service: BookingService
    rate_limiter: RateLimiter


def build_services(config: Config, store: CalendarStore) -> Services:
    """Create the cache, fetcher, ledger and services for one server instance."""
    calendars = normalize_calendars(config.caldav_calendar, config.additional_calendars)
    if not calendars:
        logger.warning("No calendars configured; every slot will be reported free")

    fetcher = CalendarFetcher(store, calendars, query_timeout=config.request_timeout)
    cache = AvailabilityCache(fetcher)
    ledger = BookingLedger()
    return Services(
        store=store,
        fetcher=fetcher,
        cache=cache,
        slot_calculator=SlotCalculator(cache, SlotSettings.from_config(config)),
        ledger=ledger,
        booking_service=BookingService(store, ledger, BookingSettings.from_config(config)),
        rate_limiter=RateLimiter(RateLimitConfig(per_ip_limit=config.rate_limit_per_minute)),
    )


async def create_caldav_store(config: Config) -> LiteCalDAVClient:
    """CalDAV store on the shared, basic-auth HTTP client.

    Raises:
        ConfigError: If no CalDAV server URL is configured
    """
    if not config.caldav_server_url:
        raise ConfigError("CALDAV_SERVER_URL is not configured")

    auth = None
    if config.caldav_username:
        auth = httpx.BasicAuth(config.caldav_username, config.caldav_password)
    client = await get_shared_client(
        CALDAV_CLIENT_ID, auth=auth, timeout=build_timeout(config.request_timeout)
    )
    return LiteCalDAVClient(config.caldav_server_url, client)


async def verify_store(store: CalendarStore) -> list[str]:
    """List the server's calendars once to prove it is reachable.

    Raises:
        FetchError: If discovery fails
    """
    calendars = await store.find_calendars()
    logger.info("CalDAV client successfully connected; %d calendars found", len(calendars))
    return calendars


def make_app(config: Config, services: Services) -> web.Application:
    """Create the aiohttp application with middleware and routes."""
    app = web.Application(middlewares=[correlation_id_middleware, rate_limit_middleware])
    app[RATE_LIMITER_KEY] = services.rate_limiter
    app["services"] = services

    static_dir = Path(config.static_dir) if config.static_dir else DEFAULT_STATIC_DIR
    register_static_routes(app, static_dir)
    register_api_routes(app, services.slot_calculator, services.booking_service)

    async def _start_background(_app: web.Application) -> None:
        await services.rate_limiter.start()

    async def _stop_background(_app: web.Application) -> None:
        await services.rate_limiter.stop()

    app.on_startup.append(_start_background)
    app.on_cleanup.append(_stop_background)
    return app


def _build_default_config_from_env(config_path: Optional[str] = None) -> Config:
    """Config file values overridden by .env / environment variables."""
    overrides = ConfigManager().load_full_config()
    return load_config(config_path, overrides=overrides)


async def _serve(config: Config, external_stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the server until the stop event is set.

    Args:
        config: Server configuration
        external_stop_event: When given the caller owns signal handling;
            otherwise SIGINT/SIGTERM handlers are registered here
    """
    stop_event = external_stop_event or asyncio.Event()
    store = await create_caldav_store(config)

    try:
        if config.verify_on_startup:
            await verify_store(store)

        services = build_services(config, store)
        app = make_app(config, services)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, host=config.server_bind, port=config.server_port)
        try:
            await site.start()
        except OSError:
            logger.exception(
                "Failed to start server on %s:%d", config.server_bind, config.server_port
            )
            await runner.cleanup()
            raise
        logger.info("Server started at http://%s:%d", config.server_bind, config.server_port)

        if external_stop_event is None:
            loop = asyncio.get_running_loop()

            def _on_signal() -> None:
                logger.info("Shutdown signal received")
                stop_event.set()

            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(sig, _on_signal)

        await stop_event.wait()
        logger.info("Stop event received, shutting down")
        await runner.cleanup()
    finally:
        await close_all_clients()
        logger.info("Server shutdown complete")


def start_server(config: Config) -> None:
    """Start the asyncio event loop and HTTP server; blocks until stopped.

    Raises:
        FetchError: If startup verification against the CalDAV server fails
    """
    from slotbot_lite.lite_logging import configure_lite_logging  # noqa: PLC0415

    configure_lite_logging(log_level=config.log_level)
    asyncio.run(_serve(config))
