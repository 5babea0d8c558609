"""Protocols for the collaborators the availability engine depends on."""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol, runtime_checkable

from slotbot_lite.calendar.lite_models import CalendarEvent


@runtime_checkable
class CalendarStore(Protocol):
    """Remote calendar store reachable over a request/response protocol.

    Implementations raise ``CalendarQueryError`` from queries and discovery,
    ``RemoteMutationError`` (or ``UnconfirmedWriteError``) from mutations.
    """

    async def query_events(
        self, calendar: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        """Raw (unexpanded) events of ``calendar`` touching [start, end)."""
        ...

    async def put_event(self, path: str, body: bytes) -> None:
        """Create or replace the calendar object at ``path``."""
        ...

    async def delete_event(self, path: str) -> None:
        """Delete the calendar object at ``path``."""
        ...

    async def find_calendars(self) -> list[str]:
        """Paths of the calendar collections visible to the configured account."""
        ...


@runtime_checkable
class DayFetcher(Protocol):
    """Produces the expanded occurrences of one calendar day."""

    async def fetch_day(self, day: date) -> list[CalendarEvent]:
        ...
