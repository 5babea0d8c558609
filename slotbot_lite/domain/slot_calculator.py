"""Free hourly slot computation over the availability cache."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from slotbot_lite.calendar.lite_models import WEEKDAY_CODES, CalendarEvent
from slotbot_lite.core.timezone_utils import date_to_utc_datetime, format_date_key, now_utc

from .availability_cache import AvailabilityCache

logger = logging.getLogger(__name__)

SLOT_LENGTH = timedelta(hours=1)


@dataclass(frozen=True)
class SlotSettings:
    """Working-hours window used to build the slot grid (hours in UTC)."""

    days_available: int = 28
    workday_start_hour: int = 8
    workday_end_hour: int = 19
    non_working_days: tuple[str, ...] = ("SU",)

    @classmethod
    def from_config(cls, config: object) -> SlotSettings:
        return cls(
            days_available=getattr(config, "days_available", 28),
            workday_start_hour=getattr(config, "workday_start_hour", 8),
            workday_end_hour=getattr(config, "workday_end_hour", 19),
            non_working_days=tuple(getattr(config, "non_working_days", ("SU",))),
        )


def format_hour(hour: int) -> str:
    return f"{hour:02d}:00"


def is_slot_free(slot_start: datetime, occurrences: Iterable[CalendarEvent]) -> bool:
    """True unless an occurrence overlaps [slot_start, slot_start + 1h)."""
    slot_end = slot_start + SLOT_LENGTH
    return not any(occ.overlaps(slot_start, slot_end) for occ in occurrences)


class SlotCalculator:
    """Builds the date -> free "HH:00" labels response."""

    def __init__(
        self,
        cache: AvailabilityCache,
        settings: SlotSettings,
        time_provider: Callable[[], datetime] = now_utc,
    ) -> None:
        self.cache = cache
        self.settings = settings
        self.time_provider = time_provider

    def _is_working_day(self, day: date) -> bool:
        return WEEKDAY_CODES[day.weekday()] not in self.settings.non_working_days

    def business_days(self, now: Optional[datetime] = None) -> list[str]:
        """Date keys from today through the booking horizon, minus non-working days."""
        today = (now or self.time_provider()).date()
        days = (today + timedelta(days=offset) for offset in range(self.settings.days_available))
        return [format_date_key(day) for day in days if self._is_working_day(day)]

    def free_slots(self, day: date, occurrences: Iterable[CalendarEvent]) -> list[str]:
        """Ordered free hour labels of ``day`` within working hours."""
        occurrences = list(occurrences)
        midnight = date_to_utc_datetime(day)
        return [
            format_hour(hour)
            for hour in range(self.settings.workday_start_hour, self.settings.workday_end_hour)
            if is_slot_free(midnight + timedelta(hours=hour), occurrences)
        ]

    async def compute_availability(self, now: Optional[datetime] = None) -> dict[str, list[str]]:
        """Sync the bookable dates and return their free slots.

        Dates without any free slot are left out of the result.
        """
        dates = self.business_days(now)
        report = await self.cache.sync(dates)
        if report.failed:
            logger.info(
                "Availability computed with %d stale dates: %s",
                len(report.failed),
                ", ".join(sorted(report.failed)),
            )

        slots: dict[str, list[str]] = {}
        for key in dates:
            occurrences = await self.cache.get(key)
            day_slots = self.free_slots(date.fromisoformat(key), occurrences)
            if day_slots:
                slots[key] = day_slots
        return slots
