"""Async CalDAV client for SlotBot Lite.

Implements the calendar-store operations the engine needs on top of a
shared ``httpx.AsyncClient``:

- REPORT calendar-query with a VEVENT time-range filter
- PUT / DELETE of single calendar objects
- PROPFIND discovery of calendar collections
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, NoReturn, Optional

import defusedxml.ElementTree as ET
import httpx
from defusedxml import DefusedXmlException

from slotbot_lite.core.exceptions import (
    CalendarQueryError,
    RemoteMutationError,
    UnconfirmedWriteError,
)
from slotbot_lite.core.timezone_utils import ensure_utc

from .lite_ics_codec import parse_calendar_data
from .lite_models import CalendarEvent

logger = logging.getLogger(__name__)

DAV_NS = "DAV:"
CALDAV_NS = "urn:ietf:params:xml:ns:caldav"
_NS = {"D": DAV_NS, "C": CALDAV_NS}

CALDAV_TIME_FORMAT = "%Y%m%dT%H%M%SZ"

CALENDAR_QUERY_TEMPLATE = """<?xml version="1.0" encoding="utf-8" ?>
<C:calendar-query xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:caldav">
  <D:prop>
    <D:getetag/>
    <C:calendar-data/>
  </D:prop>
  <C:filter>
    <C:comp-filter name="VCALENDAR">
      <C:comp-filter name="VEVENT">
        <C:time-range start="{start}" end="{end}"/>
      </C:comp-filter>
    </C:comp-filter>
  </C:filter>
</C:calendar-query>
"""

PROPFIND_CALENDARS_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<D:propfind xmlns:D="DAV:">
  <D:prop>
    <D:resourcetype/>
    <D:displayname/>
  </D:prop>
</D:propfind>
"""

# Failures where the request may already have reached the server
_UNCONFIRMED_ERRORS: tuple[type[Exception], ...] = (
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.RemoteProtocolError,
    httpx.ReadError,
)


def format_caldav_time(moment: datetime) -> str:
    return ensure_utc(moment).strftime(CALDAV_TIME_FORMAT)


def build_calendar_query(start: datetime, end: datetime) -> str:
    return CALENDAR_QUERY_TEMPLATE.format(
        start=format_caldav_time(start), end=format_caldav_time(end)
    )


def parse_multistatus_calendar_data(xml_text: str | bytes) -> list[str]:
    """Extract every non-empty ``calendar-data`` payload from a multistatus body.

    Raises:
        ValueError: If the body is not well-formed XML
    """
    try:
        root = ET.fromstring(xml_text)
    except (ET.ParseError, DefusedXmlException) as e:
        raise ValueError(f"Invalid multistatus response: {e}") from e

    payloads = []
    for node in root.iterfind(".//C:calendar-data", _NS):
        if node.text and node.text.strip():
            payloads.append(node.text)
    return payloads


def parse_multistatus_calendars(xml_text: str | bytes) -> list[str]:
    """Hrefs of the responses whose resourcetype marks a calendar collection.

    Raises:
        ValueError: If the body is not well-formed XML
    """
    try:
        root = ET.fromstring(xml_text)
    except (ET.ParseError, DefusedXmlException) as e:
        raise ValueError(f"Invalid multistatus response: {e}") from e

    calendars = []
    for response in root.iterfind("D:response", _NS):
        href = response.findtext("D:href", default="", namespaces=_NS).strip()
        is_calendar = response.find(".//D:resourcetype/C:calendar", _NS) is not None
        if href and is_calendar:
            calendars.append(href)
    return calendars


class LiteCalDAVClient:
    """CalDAV implementation of the ``CalendarStore`` protocol."""

    def __init__(
        self,
        server_url: str,
        client: httpx.AsyncClient,
        home_path: Optional[str] = None,
    ) -> None:
        """Initialize CalDAV client.

        Args:
            server_url: Base URL of the CalDAV server
            client: HTTP client (normally the shared, authenticated one)
            home_path: Collection to PROPFIND for calendar discovery
                (defaults to the server URL itself)
        """
        self.server_url = httpx.URL(server_url)
        self.client = client
        self.home_path = home_path or ""

    def _url(self, path: str) -> httpx.URL:
        return self.server_url.join(path) if path else self.server_url

    async def query_events(
        self, calendar: str, start: datetime, end: datetime
    ) -> list[CalendarEvent]:
        """Run a calendar-query REPORT and decode every returned VEVENT.

        Raises:
            CalendarQueryError: On transport errors, non-207/200 status or bad payloads
        """
        try:
            response = await self.client.request(
                "REPORT",
                self._url(calendar),
                content=build_calendar_query(start, end).encode("utf-8"),
                headers={"Depth": "1", "Content-Type": "application/xml; charset=utf-8"},
            )
        except httpx.TimeoutException as e:
            raise CalendarQueryError(calendar, f"query timed out: {e}") from e
        except httpx.HTTPError as e:
            raise CalendarQueryError(calendar, f"query failed: {e}") from e

        if response.status_code not in (200, 207):
            raise CalendarQueryError(
                calendar,
                f"unexpected status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payloads = parse_multistatus_calendar_data(response.content)
        except ValueError as e:
            raise CalendarQueryError(calendar, str(e), status_code=response.status_code) from e

        events: list[CalendarEvent] = []
        for payload in payloads:
            try:
                events.extend(parse_calendar_data(payload, calendar=calendar))
            except ValueError as e:
                logger.warning("Skipping undecodable calendar object from %s: %s", calendar, e)

        logger.debug(
            "Calendar %s returned %d objects, %d events", calendar, len(payloads), len(events)
        )
        return events

    async def put_event(self, path: str, body: bytes) -> None:
        """PUT a calendar object.

        Raises:
            UnconfirmedWriteError: Request sent but no response received
            RemoteMutationError: Connection failed or server rejected the object
        """
        response = await self._mutate(
            "PUT",
            path,
            content=body,
            headers={"Content-Type": "text/calendar; charset=utf-8"},
        )
        if response.status_code not in (200, 201, 204):
            raise RemoteMutationError(
                f"Creating {path} failed",
                reason=f"server responded with status {response.status_code}",
            )
        logger.debug("Created calendar object %s (status %d)", path, response.status_code)

    async def delete_event(self, path: str) -> None:
        """DELETE a calendar object; a missing object counts as deleted.

        Raises:
            UnconfirmedWriteError: Request sent but no response received
            RemoteMutationError: Connection failed or server refused the delete
        """
        response = await self._mutate("DELETE", path)
        if response.status_code == 404:
            logger.info("Calendar object %s was already gone", path)
            return
        if response.status_code not in (200, 202, 204):
            raise RemoteMutationError(
                f"Deleting {path} failed",
                reason=f"server responded with status {response.status_code}",
            )
        logger.debug("Deleted calendar object %s", path)

    async def find_calendars(self) -> list[str]:
        """PROPFIND the home collection and list calendar collection hrefs.

        Raises:
            CalendarQueryError: If discovery fails
        """
        target = self.home_path or str(self.server_url)
        try:
            response = await self.client.request(
                "PROPFIND",
                self._url(self.home_path),
                content=PROPFIND_CALENDARS_BODY.encode("utf-8"),
                headers={"Depth": "1", "Content-Type": "application/xml; charset=utf-8"},
            )
        except httpx.HTTPError as e:
            raise CalendarQueryError(target, f"calendar discovery failed: {e}") from e

        if response.status_code not in (200, 207):
            raise CalendarQueryError(
                target,
                f"calendar discovery returned status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            calendars = parse_multistatus_calendars(response.content)
        except ValueError as e:
            raise CalendarQueryError(target, str(e)) from e

        logger.debug("Discovered calendars: %s", calendars)
        return calendars

    async def _mutate(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, self._url(path), **kwargs)
        except _UNCONFIRMED_ERRORS as e:
            _raise_unconfirmed(method, path, e)
        except httpx.HTTPError as e:
            raise RemoteMutationError(f"{method} {path} failed", reason=str(e) or type(e).__name__) from e


def _raise_unconfirmed(method: str, path: str, error: Exception) -> NoReturn:
    raise UnconfirmedWriteError(
        f"{method} {path} was sent but not confirmed",
        reason=str(error) or type(error).__name__,
    ) from error
