"""Configuration management for the slotbot_lite server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs; empty if the file is missing or unreadable.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Accepts an optional leading ``export``
        - Strips quotes (both single and double) from values
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.debug("Failed to read .env file (continuing): %s", path, exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :]

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")
        if key:
            result[key] = val

    return result


def _as_int(raw: str) -> int:
    return int(raw.strip())


def _as_float(raw: str) -> float:
    return float(raw.strip())


def _as_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _as_str(raw: str) -> str:
    return raw.strip()


# Environment variable -> (config key, converter)
ENV_MAPPING: dict[str, tuple[str, Callable[[str], Any]]] = {
    "DAYS_AVAILABLE": ("days_available", _as_int),
    "WORKDAY_START": ("workday_start_hour", _as_int),
    "WORKDAY_END": ("workday_end_hour", _as_int),
    "NON_WORKING_DAYS": ("non_working_days", _as_list),
    "CALDAV_SERVER_URL": ("caldav_server_url", _as_str),
    "CALDAV_USERNAME": ("caldav_username", _as_str),
    "CALDAV_PASSWORD": ("caldav_password", str),
    "CALDAV_CALENDAR": ("caldav_calendar", _as_str),
    "CALDAV_ADDITIONAL_CALENDARS": ("additional_calendars", _as_list),
    "CALDAV_BOOKING_CALENDAR": ("booking_calendar", _as_str),
    "SLOTBOT_REQUEST_TIMEOUT": ("request_timeout", _as_float),
    "SLOTBOT_RESOLUTION_POLICY": ("calendar_resolution_policy", _as_str),
    "SLOTBOT_ACCEPT_UNCONFIRMED": ("accept_unconfirmed_writes", _as_str),
    "SLOTBOT_RATE_LIMIT": ("rate_limit_per_minute", _as_int),
    "SLOTBOT_WEB_HOST": ("server_bind", _as_str),
    "SLOTBOT_WEB_PORT": ("server_port", _as_int),
    "SLOTBOT_LOG_LEVEL": ("log_level", _as_str),
    "SLOTBOT_STATIC_DIR": ("static_dir", _as_str),
    "SLOTBOT_VERIFY_ON_STARTUP": ("verify_on_startup", _as_str),
}


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load the .env file into ``os.environ`` without overriding existing variables.

        Returns:
            List of environment variable keys that were loaded from the .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build a configuration mapping from the variables in ``ENV_MAPPING``.

        Unset or empty variables are left out; values that fail conversion are
        logged and ignored so the config defaults apply.
        """
        cfg: dict[str, Any] = {}
        for env_name, (key, convert) in ENV_MAPPING.items():
            raw = os.environ.get(env_name)
            if raw is None or not raw.strip():
                continue
            try:
                cfg[key] = convert(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_name, raw)
        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load the .env file, then build the configuration mapping from the environment."""
        self.load_env_file()
        return self.build_config_from_env()
