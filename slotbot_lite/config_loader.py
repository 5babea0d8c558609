"""slotbot_lite.config_loader

Config loader for slotbot_lite.

- Reads YAML (PyYAML) or JSON config files (chosen by file extension).
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override and a mapping of overrides (normally built from
  environment variables).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from slotbot_lite.calendar.lite_models import WEEKDAY_CODES
from slotbot_lite.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("slotbot_lite") / "config.yaml"
RESOLUTION_POLICIES = ("strict", "lenient")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _split_list(raw: Any) -> list[str]:
    """Accept a list or a comma-separated string; blanks dropped."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    if not isinstance(items, (list, tuple)):
        items = [items]
    return [str(item).strip() for item in items if str(item).strip()]


@dataclass
class Config:
    """Typed configuration for slotbot_lite.

    Fields:
        days_available: booking horizon in days, starting today
        workday_start_hour / workday_end_hour: slot grid bounds (UTC hours)
        non_working_days: weekday codes never offered (SU..SA)
        caldav_*: CalDAV server location and credentials
        additional_calendars: extra calendars whose events block slots
        booking_calendar: calendar receiving bookings (discovered when unset)
        request_timeout: per remote call timeout in seconds
        calendar_resolution_policy: "strict" or "lenient"
        accept_unconfirmed_writes: record bookings whose PUT got no response
        rate_limit_per_minute: API requests allowed per client IP
        server_bind / server_port: HTTP listen address
        log_level: logging level name
        static_dir: directory served under /static (package default when unset)
        verify_on_startup: check the CalDAV server before serving
    """

    days_available: int = 28
    workday_start_hour: int = 8
    workday_end_hour: int = 19
    non_working_days: list[str] = field(default_factory=lambda: ["SU"])
    caldav_server_url: str = ""
    caldav_username: str = ""
    caldav_password: str = field(default="", repr=False)
    caldav_calendar: str = ""
    additional_calendars: list[str] = field(default_factory=list)
    booking_calendar: Optional[str] = None
    request_timeout: float = 10.0
    calendar_resolution_policy: str = "strict"
    accept_unconfirmed_writes: bool = True
    rate_limit_per_minute: int = 100
    server_bind: str = "0.0.0.0"  # nosec: B104 - intentional default; override via SLOTBOT_WEB_HOST
    server_port: int = 5000
    log_level: str = "INFO"
    static_dir: Optional[str] = None
    verify_on_startup: bool = True

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Values are coerced to the field types; anything that cannot be coerced
        falls back to the default with a warning. Hour bounds are clamped to
        0..24 and an empty working-hours window resets to the defaults.
        """
        if data is None:
            data = {}
        defaults = cls()

        def _coerce_int(key: str, default: int) -> int:
            raw = data.get(key, default)
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default

        def _coerce_float(key: str, default: float) -> float:
            raw = data.get(key, default)
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %s", key, raw, default)
                return default
            if value <= 0:
                logger.warning("Config %s=%r must be positive; using default %s", key, raw, default)
                return default
            return value

        def _coerce_bool(key: str, default: bool) -> bool:
            raw = data.get(key, default)
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE_VALUES:
                return True
            if text in _FALSE_VALUES:
                return False
            logger.warning("Config %s=%r is not a boolean; using default %s", key, raw, default)
            return default

        def _coerce_str(key: str, default: str) -> str:
            raw = data.get(key, default)
            return str(raw).strip() if raw is not None else default

        days_available = _coerce_int("days_available", defaults.days_available)
        if days_available < 1:
            logger.warning("days_available %d below minimum; coercing to 1", days_available)
            days_available = 1

        start_hour = min(max(_coerce_int("workday_start_hour", defaults.workday_start_hour), 0), 24)
        end_hour = min(max(_coerce_int("workday_end_hour", defaults.workday_end_hour), 0), 24)
        if start_hour >= end_hour:
            logger.warning(
                "Working hours %d..%d are empty; using defaults %d..%d",
                start_hour,
                end_hour,
                defaults.workday_start_hour,
                defaults.workday_end_hour,
            )
            start_hour, end_hour = defaults.workday_start_hour, defaults.workday_end_hour

        non_working_days = []
        for code in _split_list(data.get("non_working_days", defaults.non_working_days)):
            code = code.upper()[:2]
            if code in WEEKDAY_CODES:
                if code not in non_working_days:
                    non_working_days.append(code)
            else:
                logger.warning("Ignoring unknown weekday %r in non_working_days", code)

        policy = _coerce_str("calendar_resolution_policy", defaults.calendar_resolution_policy).lower()
        if policy not in RESOLUTION_POLICIES:
            logger.warning("Unknown calendar_resolution_policy %r; using 'strict'", policy)
            policy = "strict"

        rate_limit = _coerce_int("rate_limit_per_minute", defaults.rate_limit_per_minute)
        if rate_limit < 1:
            logger.warning("rate_limit_per_minute %d below minimum; coercing to 1", rate_limit)
            rate_limit = 1

        booking_calendar = data.get("booking_calendar")
        static_dir = data.get("static_dir")

        return cls(
            days_available=days_available,
            workday_start_hour=start_hour,
            workday_end_hour=end_hour,
            non_working_days=non_working_days,
            caldav_server_url=_coerce_str("caldav_server_url", ""),
            caldav_username=_coerce_str("caldav_username", ""),
            caldav_password=_coerce_str("caldav_password", ""),
            caldav_calendar=_coerce_str("caldav_calendar", ""),
            additional_calendars=_split_list(data.get("additional_calendars")),
            booking_calendar=str(booking_calendar).strip() or None if booking_calendar else None,
            request_timeout=_coerce_float("request_timeout", defaults.request_timeout),
            calendar_resolution_policy=policy,
            accept_unconfirmed_writes=_coerce_bool(
                "accept_unconfirmed_writes", defaults.accept_unconfirmed_writes
            ),
            rate_limit_per_minute=rate_limit,
            server_bind=_coerce_str("server_bind", defaults.server_bind) or defaults.server_bind,
            server_port=_coerce_int("server_port", defaults.server_port),
            log_level=_coerce_str("log_level", defaults.log_level).upper(),
            static_dir=str(static_dir) if static_dir else None,
            verify_on_startup=_coerce_bool("verify_on_startup", defaults.verify_on_startup),
        )


def _load_yaml_or_json(path: Path) -> Any:
    """Load a mapping from a YAML or JSON file.

    Files ending in ``.json`` are parsed as JSON; everything else as YAML.
    ``yaml`` is imported lazily to keep package import light.

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Unable to read config file {path}: {e}") from e

    if path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e

    import yaml  # noqa: PLC0415

    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
    # safe_load returns None for empty files
    return {} if loaded is None else loaded


def load_config(
    path: Optional[str] = None, overrides: Optional[dict[str, Any]] = None
) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to
              ./slotbot_lite/config.yaml (relative to current working dir).
        overrides: Values taking precedence over the file (e.g. from env vars)

    Behavior:
    - If the file is missing: defaults plus overrides.
    - If the file's top level is not a mapping: raises ConfigError.
    """
    p = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_PATH
    logger.debug("Attempting to load config from %s", p)

    raw: Any = {}
    if p.exists():
        raw = _load_yaml_or_json(p)
        if not isinstance(raw, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
            raise ConfigError("Config file must contain a mapping at top level")
        logger.info("Loaded configuration from %s", p)
    elif path:
        raise ConfigError(f"Config file {p} not found")
    else:
        logger.info("Config file %s not found; using defaults", p)

    merged = {**raw, **(overrides or {})}
    cfg = Config.from_dict(merged)
    logger.debug("Configuration values: %s", cfg)
    return cfg
