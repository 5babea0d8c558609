"""Per-day calendar fetching with per-calendar fan-out."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from dateutil.relativedelta import relativedelta

from slotbot_lite.calendar.lite_models import CalendarEvent
from slotbot_lite.calendar.lite_rrule_expander import DEFAULT_MAX_ITERATIONS, expand_events
from slotbot_lite.core.async_utils import describe_failure, gather_settled
from slotbot_lite.core.exceptions import CalendarQueryError, FetchError
from slotbot_lite.core.timezone_utils import day_window

from .protocols import CalendarStore

logger = logging.getLogger(__name__)

# Recurring events anchored far from the target day still need to be seen
DEFAULT_SEARCH_PADDING = relativedelta(years=1)
DEFAULT_QUERY_TIMEOUT = 10.0


def normalize_calendars(primary: str, additional: Iterable[str] = ()) -> list[str]:
    """Primary calendar first, then additional ones; blanks and duplicates dropped."""
    calendars: list[str] = []
    for raw in [primary, *additional]:
        cal = (raw or "").strip()
        if cal and cal not in calendars:
            calendars.append(cal)
    return calendars


class CalendarFetcher:
    """Collects one day's occurrences from every configured calendar."""

    def __init__(
        self,
        store: CalendarStore,
        calendars: list[str],
        padding: relativedelta = DEFAULT_SEARCH_PADDING,
        query_timeout: float = DEFAULT_QUERY_TIMEOUT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.store = store
        self.calendars = list(calendars)
        self.padding = padding
        self.query_timeout = query_timeout
        self.max_iterations = max_iterations

    async def fetch_raw_events(self, day: date) -> list[CalendarEvent]:
        """Query every calendar concurrently around ``day`` and join all results.

        Raises:
            FetchError: Every configured calendar failed
        """
        day_start, day_end = day_window(day)
        search_start = day_start - self.padding
        search_end = day_end + self.padding

        results = await gather_settled(
            (self.store.query_events(cal, search_start, search_end) for cal in self.calendars),
            timeout=self.query_timeout,
        )

        raw_events: list[CalendarEvent] = []
        failures: list[Exception] = []
        for calendar, result in zip(self.calendars, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Error querying calendar %s for %s: %s", calendar, day, describe_failure(result)
                )
                if isinstance(result, Exception):
                    failures.append(
                        result
                        if isinstance(result, CalendarQueryError)
                        else CalendarQueryError(calendar, describe_failure(result))
                    )
                    continue
                raise result
            raw_events.extend(result)

        if failures and len(failures) == len(self.calendars):
            raise FetchError(
                f"No events retrieved for {day}: all {len(failures)} calendars failed",
                failures=failures,
            )
        return raw_events

    async def fetch_day(self, day: date) -> list[CalendarEvent]:
        """Expanded occurrences starting within ``day`` (UTC).

        Raises:
            FetchError: See ``fetch_raw_events``
        """
        raw_events = await self.fetch_raw_events(day)
        day_start, day_end = day_window(day)
        occurrences = expand_events(raw_events, day_start, day_end, self.max_iterations)
        logger.debug(
            "Loaded %d raw events, expanded to %d instances for date %s",
            len(raw_events),
            len(occurrences),
            day,
        )
        return occurrences
