"""Shared fixtures for the slotbot_lite test-suite."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Generator
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

import pytest

from slotbot_lite.calendar.lite_models import CalendarEvent, RecurrenceRule
from slotbot_lite.core.exceptions import CalendarQueryError, RemoteMutationError
from slotbot_lite.core.http_client import close_all_clients


class FakeCalendarStore:
    """In-memory ``CalendarStore`` used instead of a CalDAV server.

    Events are returned per calendar regardless of the requested range, the
    way a server returns every recurring master that may touch it.
    """

    def __init__(self) -> None:
        self.events: dict[str, list[CalendarEvent]] = {}
        self.failing_calendars: set[str] = set()
        self.query_delay: float = 0.0
        self.calendars: list[str] = ["/calendars/user/default/"]
        self.discovery_error: Optional[Exception] = None
        self.put_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.objects: dict[str, bytes] = {}
        self.queries: list[tuple[str, datetime, datetime]] = []
        self.deleted: list[str] = []

    def add_event(self, calendar: str, event: CalendarEvent) -> None:
        self.events.setdefault(calendar, []).append(event)

    async def query_events(
        self, calendar: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        self.queries.append((calendar, start, end))
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        if calendar in self.failing_calendars:
            raise CalendarQueryError(calendar, "unexpected status 500", status_code=500)
        return list(self.events.get(calendar, []))

    async def put_event(self, path: str, body: bytes) -> None:
        if self.put_error is not None:
            raise self.put_error
        self.objects[path] = body

    async def delete_event(self, path: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(path)
        self.objects.pop(path, None)

    async def find_calendars(self) -> list[str]:
        if self.discovery_error is not None:
            raise self.discovery_error
        return list(self.calendars)


@pytest.fixture
def fake_store() -> FakeCalendarStore:
    return FakeCalendarStore()


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    """Factory for events: ``make_event("2024-06-03T10:00", hours=1, rrule=None)``."""

    def _make(
        start: str,
        hours: float = 1,
        rrule: Optional[RecurrenceRule] = None,
        uid: str = "evt",
        **properties: str,
    ) -> CalendarEvent:
        begin = datetime.fromisoformat(start).replace(tzinfo=UTC)
        return CalendarEvent(
            uid=uid,
            start=begin,
            end=begin + timedelta(hours=hours),
            rrule=rrule,
            properties=dict(properties),
        )

    return _make


@pytest.fixture
def frozen_now() -> datetime:
    """Monday 2024-06-03 07:30 UTC."""
    return datetime(2024, 6, 3, 7, 30, tzinfo=UTC)


@pytest.fixture
def remote_failure() -> RemoteMutationError:
    return RemoteMutationError("PUT failed", reason="server responded with status 500")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear env vars that change configuration or the clock between tests."""
    for name in (
        "SLOTBOT_TEST_TIME",
        "SLOTBOT_DEBUG",
        "SLOTBOT_LOG_LEVEL",
        "DAYS_AVAILABLE",
        "WORKDAY_START",
        "WORKDAY_END",
        "NON_WORKING_DAYS",
        "CALDAV_SERVER_URL",
        "CALDAV_CALENDAR",
        "CALDAV_ADDITIONAL_CALENDARS",
        "SLOTBOT_WEB_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def sample_ics_simple() -> str:
    """One "Team Meeting" on 2024-01-15 10:00-11:00 UTC."""
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//SlotBot Test//EN
BEGIN:VEVENT
UID:test-event-001@slotbot.test
DTSTART:20240115T100000Z
DTEND:20240115T110000Z
SUMMARY:Team Meeting
LOCATION:Conference Room A
DESCRIPTION:Weekly team sync meeting
DTSTAMP:20240115T090000Z
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_recurring() -> str:
    """Daily Standup at 09:00-09:15 UTC, RRULE:FREQ=DAILY;COUNT=5."""
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//SlotBot Test//EN
BEGIN:VEVENT
UID:test-event-002@slotbot.test
DTSTART:20240115T090000Z
DTEND:20240115T091500Z
SUMMARY:Daily Standup
RRULE:FREQ=DAILY;COUNT=5
DTSTAMP:20240115T080000Z
END:VEVENT
END:VCALENDAR
"""
