"""Data models for calendar events and recurrence rules - SlotBot Lite version."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from slotbot_lite.core.timezone_utils import ensure_utc

DEFAULT_EVENT_DURATION = timedelta(hours=1)

# Two-letter weekday codes indexed by Python's date.weekday() (Monday == 0)
WEEKDAY_CODES: tuple[str, ...] = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


class Frequency(str, Enum):
    """Recurrence frequencies the expander knows how to advance."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_value(cls, value: str) -> Frequency:
        try:
            return cls(value.upper())
        except ValueError:
            return cls.UNKNOWN


class RecurrenceRule(BaseModel):
    """Parsed recurrence rule.

    ``frequency`` keeps the FREQ value as it was received; ``freq`` is the
    interpreted enum (unrecognized values map to UNKNOWN).
    """

    model_config = ConfigDict(frozen=True)

    frequency: str = ""
    interval: int = Field(default=1, ge=1)
    count: int = Field(default=0, ge=0, description="0 means unbounded")
    until: Optional[datetime] = None
    by_day: tuple[str, ...] = ()

    @field_validator("until")
    @classmethod
    def _until_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @property
    def freq(self) -> Frequency:
        return Frequency.from_value(self.frequency)

    @property
    def by_weekday_numbers(self) -> frozenset[int]:
        """BYDAY as a set of ``date.weekday()`` numbers."""
        return frozenset(WEEKDAY_CODES.index(code) for code in self.by_day if code in WEEKDAY_CODES)


class CalendarEvent(BaseModel):
    """A calendar event, or one concrete occurrence of a recurring event.

    ``properties`` is an opaque bag (summary, description, status, ...)
    carried through expansion untouched.
    """

    uid: str = ""
    start: datetime
    end: Optional[datetime] = None
    rrule: Optional[RecurrenceRule] = None
    properties: dict[str, str] = Field(default_factory=dict)
    calendar: str = ""
    is_expanded_instance: bool = False

    @field_validator("start", "end")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _default_end(self) -> CalendarEvent:
        if self.end is None:
            self.end = self.start + DEFAULT_EVENT_DURATION
        return self

    @property
    def duration(self) -> timedelta:
        assert self.end is not None
        return self.end - self.start

    @property
    def summary(self) -> str:
        return self.properties.get("summary", "")

    def as_occurrence(self, start: datetime) -> CalendarEvent:
        """Deep copy of this event moved to ``start`` with the same duration."""
        return self.model_copy(
            update={
                "start": start,
                "end": start + self.duration,
                "is_expanded_instance": True,
            },
            deep=True,
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Strict half-open overlap with [start, end)."""
        assert self.end is not None
        return self.start < end and self.end > start


class BookingDetails(BaseModel):
    """Caller-supplied descriptive metadata embedded in a booked event."""

    topic: str
    full_name: str
    contact_info: str
