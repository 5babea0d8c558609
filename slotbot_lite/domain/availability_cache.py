"""Date-keyed cache of expanded occurrences, refreshed in bulk."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from slotbot_lite.calendar.lite_models import CalendarEvent
from slotbot_lite.core.async_utils import AsyncRWLock, describe_failure, gather_settled
from slotbot_lite.core.timezone_utils import parse_date_key

from .protocols import DayFetcher

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one sync call."""

    refreshed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class AvailabilityCache:
    """Mapping of "YYYY-MM-DD" to that day's occurrences.

    Each date's entry is replaced wholesale by ``sync``. All writes of one
    sync happen under a single exclusive lock acquisition, so readers see
    either the previous or the fully updated set. Fetching happens before
    the lock is taken.
    """

    def __init__(self, fetcher: DayFetcher) -> None:
        self.fetcher = fetcher
        self._entries: dict[str, tuple[CalendarEvent, ...]] = {}
        self._lock = AsyncRWLock()

    async def _fetch(self, key: str) -> list[CalendarEvent]:
        return await self.fetcher.fetch_day(parse_date_key(key))

    async def sync(self, dates: Iterable[str]) -> SyncReport:
        """Refresh the given dates; one concurrent fetch task per date.

        Never raises: a failed date keeps its previous entry and is reported.
        """
        keys = list(dict.fromkeys(dates))
        report = SyncReport()
        if not keys:
            return report

        results = await gather_settled(self._fetch(key) for key in keys)

        updates: dict[str, tuple[CalendarEvent, ...]] = {}
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                reason = describe_failure(result)
                logger.warning("Error loading events for date %s: %s", key, reason)
                report.failed[key] = reason
                continue
            updates[key] = tuple(result)

        async with self._lock.write():
            self._entries.update(updates)
        report.refreshed = list(updates)

        logger.debug(
            "Synced %d dates (%d failed)", len(report.refreshed), len(report.failed)
        )
        return report

    async def get(self, key: str) -> tuple[CalendarEvent, ...]:
        """Occurrences cached for one date; empty if never synced."""
        async with self._lock.read():
            return self._entries.get(key, ())

    async def snapshot(self) -> dict[str, tuple[CalendarEvent, ...]]:
        """Consistent copy of the whole cache."""
        async with self._lock.read():
            return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
