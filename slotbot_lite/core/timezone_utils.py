"""UTC time helpers for slotbot_lite.

All calendar math in the engine runs on timezone-aware UTC datetimes. Naive
values coming from the remote store or from booking input are interpreted as
UTC.
"""

from __future__ import annotations

import datetime
import logging
import os

logger = logging.getLogger(__name__)

TEST_TIME_ENV = "SLOTBOT_TEST_TIME"


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the SLOTBOT_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2024-06-03T09:30:00Z")
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            from dateutil import parser as date_parser

            return ensure_utc(date_parser.isoparse(test_time))
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.UTC)


def ensure_utc(dt: datetime.datetime) -> datetime.datetime:
    """Normalize a datetime to an aware UTC datetime (naive is assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.UTC)
    return dt.astimezone(datetime.UTC)


def date_to_utc_datetime(value: datetime.date) -> datetime.datetime:
    """Midnight UTC of a calendar date."""
    return datetime.datetime(value.year, value.month, value.day, tzinfo=datetime.UTC)


def day_window(day: datetime.date) -> tuple[datetime.datetime, datetime.datetime]:
    """Half-open [00:00, +24h) UTC window for a calendar day."""
    start = date_to_utc_datetime(day)
    return start, start + datetime.timedelta(days=1)


def parse_date_key(key: str) -> datetime.date:
    """Parse a "YYYY-MM-DD" cache key.

    Raises:
        ValueError: If the key is not a valid ISO date
    """
    return datetime.datetime.strptime(key, "%Y-%m-%d").date()


def format_date_key(day: datetime.date) -> str:
    """Format a date as a "YYYY-MM-DD" cache key."""
    return day.strftime("%Y-%m-%d")
