"""Tests for per-day fetching across several calendars."""

from datetime import UTC, date, datetime

import pytest
from dateutil.relativedelta import relativedelta

from slotbot_lite.calendar.lite_models import RecurrenceRule
from slotbot_lite.core.exceptions import CalendarQueryError, FetchError
from slotbot_lite.domain.calendar_fetcher import CalendarFetcher, normalize_calendars

pytestmark = [pytest.mark.unit, pytest.mark.fast]

DAY = date(2024, 6, 3)


def test_normalize_calendars_drops_blanks_and_duplicates():
    assert normalize_calendars(" /a/ ", ["/b/", "", "/a/", "  ", "/c/"]) == ["/a/", "/b/", "/c/"]


def test_normalize_calendars_when_no_primary_then_additional_only():
    assert normalize_calendars("", ["/b/"]) == ["/b/"]


class TestFetchRawEvents:
    async def test_fetch_when_some_calendars_fail_then_survivors_returned(self, fake_store, make_event):
        """Two of three calendars failing still yields the third calendar's events."""
        fake_store.add_event("/c/", make_event("2024-06-03T10:00", uid="kept"))
        fake_store.failing_calendars = {"/a/", "/b/"}
        fetcher = CalendarFetcher(fake_store, ["/a/", "/b/", "/c/"])

        events = await fetcher.fetch_raw_events(DAY)

        assert [e.uid for e in events] == ["kept"]

    async def test_fetch_when_all_calendars_fail_then_fetch_error(self, fake_store):
        fake_store.failing_calendars = {"/a/", "/b/"}
        fetcher = CalendarFetcher(fake_store, ["/a/", "/b/"])

        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_raw_events(DAY)

        assert "all 2 calendars failed" in str(excinfo.value)
        assert len(excinfo.value.failures) == 2
        assert all(isinstance(f, CalendarQueryError) for f in excinfo.value.failures)

    async def test_fetch_when_calendars_empty_then_empty_list(self, fake_store):
        fetcher = CalendarFetcher(fake_store, ["/a/", "/b/"])
        assert await fetcher.fetch_raw_events(DAY) == []

    async def test_fetch_queries_every_calendar_with_padded_window(self, fake_store):
        """Each calendar is queried once over the day padded by one year each side."""
        fetcher = CalendarFetcher(fake_store, ["/a/", "/b/"])
        await fetcher.fetch_raw_events(DAY)

        assert sorted(q[0] for q in fake_store.queries) == ["/a/", "/b/"]
        _, start, end = fake_store.queries[0]
        assert start == datetime(2023, 6, 3, tzinfo=UTC)
        assert end == datetime(2025, 6, 4, tzinfo=UTC)

    async def test_fetch_with_custom_padding(self, fake_store):
        fetcher = CalendarFetcher(fake_store, ["/a/"], padding=relativedelta(days=7))
        await fetcher.fetch_raw_events(DAY)
        _, start, end = fake_store.queries[0]
        assert start == datetime(2024, 5, 27, tzinfo=UTC)
        assert end == datetime(2024, 6, 11, tzinfo=UTC)

    async def test_fetch_when_calendar_times_out_then_counted_as_failure(self, fake_store):
        fake_store.query_delay = 0.2
        fetcher = CalendarFetcher(fake_store, ["/slow/"], query_timeout=0.01)

        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_raw_events(DAY)

        (failure,) = excinfo.value.failures
        assert failure.calendar == "/slow/"
        assert "timed out" in str(failure)


class TestFetchDay:
    async def test_fetch_day_expands_recurring_events_into_the_day(self, fake_store, make_event):
        fake_store.add_event(
            "/a/",
            make_event("2024-05-01T09:00", rrule=RecurrenceRule(frequency="DAILY"), uid="daily"),
        )
        fake_store.add_event("/b/", make_event("2024-06-03T15:00", uid="one-off"))
        fake_store.add_event("/b/", make_event("2024-06-04T15:00", uid="tomorrow"))
        fetcher = CalendarFetcher(fake_store, ["/a/", "/b/"])

        occurrences = await fetcher.fetch_day(DAY)

        by_uid = {o.uid: o for o in occurrences}
        assert set(by_uid) == {"daily", "one-off"}
        assert by_uid["daily"].start == datetime(2024, 6, 3, 9, tzinfo=UTC)
        assert by_uid["daily"].is_expanded_instance

    async def test_fetch_day_propagates_fetch_error(self, fake_store):
        fake_store.failing_calendars = {"/a/"}
        with pytest.raises(FetchError):
            await CalendarFetcher(fake_store, ["/a/"]).fetch_day(DAY)
