"""Lenient RRULE parsing for SlotBot Lite.

A malformed field falls back to its default instead of failing the whole
rule, so one bad value never drops an otherwise usable event from the
availability calculation.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any, Optional

from .lite_models import WEEKDAY_CODES, RecurrenceRule

logger = logging.getLogger(__name__)

RRULE_PREFIX = "RRULE:"

UNTIL_FORMATS = ("%Y%m%dT%H%M%SZ", "%Y%m%d")

# Optional ordinal (e.g. "1MO", "-1FR", "+2TU") in front of a weekday code
_BYDAY_RE = re.compile(r"^[+-]?\d{0,2}([A-Z]{2})$")


def _parse_positive_int(value: str, default: int, minimum: int) -> int:
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def parse_until(value: str) -> Optional[datetime]:
    """Parse an UNTIL value: absolute UTC timestamp first, then a bare date."""
    for fmt in UNTIL_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue
    return None


def parse_by_day(value: str) -> tuple[str, ...]:
    """Parse a comma-separated BYDAY list into ordered, unique weekday codes."""
    codes: list[str] = []
    for raw in value.split(","):
        match = _BYDAY_RE.match(raw.strip().upper())
        if match is None or match.group(1) not in WEEKDAY_CODES:
            logger.debug("Ignoring BYDAY entry %r", raw)
            continue
        code = match.group(1)
        if code not in codes:
            codes.append(code)
    return tuple(codes)


def parse_rrule(rrule_string: Optional[str]) -> Optional[RecurrenceRule]:
    """Parse an RRULE string into a RecurrenceRule.

    Args:
        rrule_string: RRULE text (e.g. "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO"),
            optionally prefixed with "RRULE:"

    Returns:
        RecurrenceRule, or None when the input is empty (event is not recurring)
    """
    if rrule_string is None:
        return None
    text = rrule_string.strip()
    if text.upper().startswith(RRULE_PREFIX):
        text = text[len(RRULE_PREFIX) :]
    if not text.strip():
        return None

    fields: dict[str, Any] = {}

    for part in text.split(";"):
        if part.count("=") != 1:
            continue
        key, value = part.split("=")
        key = key.strip().upper()
        value = value.strip()

        if key == "FREQ":
            fields["frequency"] = value.upper()
        elif key == "INTERVAL":
            fields["interval"] = _parse_positive_int(value, default=1, minimum=1)
            if str(fields["interval"]) != value:
                logger.debug("RRULE INTERVAL=%r invalid; using %d", value, fields["interval"])
        elif key == "COUNT":
            fields["count"] = _parse_positive_int(value, default=0, minimum=0)
        elif key == "UNTIL":
            until = parse_until(value)
            if until is None:
                logger.debug("RRULE UNTIL=%r unparseable; treating as unbounded", value)
            fields["until"] = until
        elif key == "BYDAY":
            fields["by_day"] = parse_by_day(value)

    return RecurrenceRule(**fields)
