"""
Central logging configuration for slotbot_lite.

Keeps third-party libraries quiet while leaving slotbot_lite's own modules at
INFO (or DEBUG on request), and stamps every record with the current request
correlation ID.
"""

import logging
import os
from typing import Optional

DEFAULT_FORMAT = "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")

# Third-party loggers and the level they are capped at
NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


class CorrelationIdFilter(logging.Filter):
    """Add the request correlation ID to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        from .api.middleware.correlation_id import get_request_id

        record.request_id = get_request_id()
        return True


def configure_lite_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for slotbot_lite.

    Args:
        debug_mode: Whether to enable debug logging for slotbot_lite modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Root level name from configuration; SLOTBOT_LOG_LEVEL wins

    Environment Variables:
        SLOTBOT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        SLOTBOT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("SLOTBOT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("SLOTBOT_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    else:
        final_debug = env_debug or debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    for candidate in (env_log_level, (log_level or "").upper()):
        if candidate in _LEVEL_NAMES:
            root_level = getattr(logging, candidate)
            break

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    correlation_filter = CorrelationIdFilter()

    # Keep handlers installed by _init_logging (colorlog); only decorate them
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root_logger.addHandler(handler)

    for existing_handler in root_logger.handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
            existing_handler.addFilter(correlation_filter)

    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)
    logging.getLogger("slotbot_lite").setLevel(logging.DEBUG if final_debug else root_level)

    if final_debug:
        root_logger.info("Debug logging enabled for slotbot_lite modules")
    else:
        root_logger.debug("Logging configured at %s", logging.getLevelName(root_level))


def get_logging_status() -> dict[str, str]:
    """Current level names of the root logger and the key loggers."""
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("slotbot_lite", "aiohttp.access", "httpx", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
