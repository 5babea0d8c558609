"""Unit tests for slotbot_lite.calendar.lite_caldav_client using httpx.MockTransport."""

from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import pytest

from slotbot_lite.calendar.lite_caldav_client import (
    LiteCalDAVClient,
    build_calendar_query,
    parse_multistatus_calendar_data,
    parse_multistatus_calendars,
)
from slotbot_lite.core.exceptions import (
    CalendarQueryError,
    RemoteMutationError,
    UnconfirmedWriteError,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]

SERVER = "https://dav.example.com/"

REPORT_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<D:multistatus xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:caldav">
  <D:response>
    <D:href>/calendars/user/work/evt1.ics</D:href>
    <D:propstat>
      <D:prop>
        <D:getetag>"1"</D:getetag>
        <C:calendar-data>BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Test//EN
BEGIN:VEVENT
UID:evt1
DTSTART:20240603T100000Z
DTEND:20240603T110000Z
SUMMARY:Planning
END:VEVENT
END:VCALENDAR
</C:calendar-data>
      </D:prop>
      <D:status>HTTP/1.1 200 OK</D:status>
    </D:propstat>
  </D:response>
  <D:response>
    <D:href>/calendars/user/work/empty.ics</D:href>
    <D:propstat><D:prop><C:calendar-data/></D:prop></D:propstat>
  </D:response>
</D:multistatus>
"""

PROPFIND_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<D:multistatus xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:caldav">
  <D:response>
    <D:href>/calendars/user/</D:href>
    <D:propstat><D:prop><D:resourcetype><D:collection/></D:resourcetype></D:prop></D:propstat>
  </D:response>
  <D:response>
    <D:href>/calendars/user/default/</D:href>
    <D:propstat><D:prop><D:resourcetype><D:collection/><C:calendar/></D:resourcetype></D:prop></D:propstat>
  </D:response>
  <D:response>
    <D:href>/calendars/user/work/</D:href>
    <D:propstat><D:prop><D:resourcetype><D:collection/><C:calendar/></D:resourcetype></D:prop></D:propstat>
  </D:response>
</D:multistatus>
"""


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> LiteCalDAVClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LiteCalDAVClient(SERVER, http)


def test_build_calendar_query_contains_utc_time_range():
    body = build_calendar_query(
        datetime(2023, 6, 3, tzinfo=UTC), datetime(2025, 6, 4, tzinfo=UTC)
    )
    assert 'start="20230603T000000Z"' in body
    assert 'end="20250604T000000Z"' in body
    assert 'comp-filter name="VEVENT"' in body


def test_parse_multistatus_calendar_data_skips_empty_payloads():
    payloads = parse_multistatus_calendar_data(REPORT_RESPONSE)
    assert len(payloads) == 1
    assert "UID:evt1" in payloads[0]


def test_parse_multistatus_calendars_only_calendar_collections():
    assert parse_multistatus_calendars(PROPFIND_RESPONSE) == [
        "/calendars/user/default/",
        "/calendars/user/work/",
    ]


def test_parse_multistatus_when_not_xml_then_value_error():
    with pytest.raises(ValueError):
        parse_multistatus_calendars("<<not xml")


ENTITY_BOMB = """<?xml version="1.0"?>
<!DOCTYPE lolz [<!ENTITY lol "lol"><!ENTITY lol2 "&lol;&lol;&lol;&lol;">]>
<D:multistatus xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:caldav">
  <D:response><D:href>&lol2;</D:href></D:response>
</D:multistatus>
"""


@pytest.mark.parametrize(
    "parser", [parse_multistatus_calendar_data, parse_multistatus_calendars]
)
def test_parse_multistatus_when_entities_declared_then_value_error(parser):
    with pytest.raises(ValueError, match="Invalid multistatus response"):
        parser(ENTITY_BOMB)


class TestQueryEvents:
    async def test_query_events_when_multistatus_then_events_decoded(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(207, text=REPORT_RESPONSE)

        client = _client(handler)
        events = await client.query_events(
            "/calendars/user/work/",
            datetime(2024, 6, 3, tzinfo=UTC),
            datetime(2024, 6, 4, tzinfo=UTC),
        )

        assert [e.uid for e in events] == ["evt1"]
        assert events[0].calendar == "/calendars/user/work/"
        assert seen[0].method == "REPORT"
        assert seen[0].headers["Depth"] == "1"
        assert str(seen[0].url) == "https://dav.example.com/calendars/user/work/"

    async def test_query_events_when_server_error_then_calendar_query_error(self):
        client = _client(lambda request: httpx.Response(500))
        with pytest.raises(CalendarQueryError) as excinfo:
            await client.query_events(
                "/cal/", datetime(2024, 6, 3, tzinfo=UTC), datetime(2024, 6, 4, tzinfo=UTC)
            )
        assert excinfo.value.status_code == 500
        assert excinfo.value.calendar == "/cal/"

    async def test_query_events_when_body_declares_entities_then_calendar_query_error(self):
        client = _client(lambda request: httpx.Response(207, text=ENTITY_BOMB))
        with pytest.raises(CalendarQueryError, match="Invalid multistatus response"):
            await client.query_events(
                "/cal/", datetime(2024, 6, 3, tzinfo=UTC), datetime(2024, 6, 4, tzinfo=UTC)
            )

    async def test_query_events_when_transport_fails_then_calendar_query_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(CalendarQueryError):
            await client.query_events(
                "/cal/", datetime(2024, 6, 3, tzinfo=UTC), datetime(2024, 6, 4, tzinfo=UTC)
            )


class TestMutations:
    async def test_put_event_when_created_then_ok(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        await _client(handler).put_event("/cal/default/abc.ics", b"BEGIN:VCALENDAR")

        assert seen[0].method == "PUT"
        assert seen[0].headers["Content-Type"].startswith("text/calendar")
        assert seen[0].content == b"BEGIN:VCALENDAR"

    async def test_put_event_when_rejected_then_remote_mutation_error(self):
        client = _client(lambda request: httpx.Response(403))
        with pytest.raises(RemoteMutationError) as excinfo:
            await client.put_event("/cal/x.ics", b"")
        assert not isinstance(excinfo.value, UnconfirmedWriteError)
        assert "403" in excinfo.value.reason

    async def test_put_event_when_read_timeout_then_unconfirmed_write_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UnconfirmedWriteError):
            await _client(handler).put_event("/cal/x.ics", b"")

    async def test_put_event_when_connect_fails_then_definite_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(RemoteMutationError) as excinfo:
            await _client(handler).put_event("/cal/x.ics", b"")
        assert not isinstance(excinfo.value, UnconfirmedWriteError)

    @pytest.mark.parametrize("status", [200, 204, 404])
    async def test_delete_event_when_success_or_missing_then_ok(self, status):
        await _client(lambda request: httpx.Response(status)).delete_event("/cal/x.ics")

    async def test_delete_event_when_server_error_then_remote_mutation_error(self):
        with pytest.raises(RemoteMutationError):
            await _client(lambda request: httpx.Response(500)).delete_event("/cal/x.ics")


class TestFindCalendars:
    async def test_find_calendars_when_propfind_ok_then_calendar_hrefs(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(207, text=PROPFIND_RESPONSE)

        calendars = await _client(handler).find_calendars()

        assert calendars == ["/calendars/user/default/", "/calendars/user/work/"]
        assert seen[0].method == "PROPFIND"

    async def test_find_calendars_when_unauthorized_then_calendar_query_error(self):
        with pytest.raises(CalendarQueryError):
            await _client(lambda request: httpx.Response(401)).find_calendars()
