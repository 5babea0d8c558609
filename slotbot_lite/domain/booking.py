"""Booking lifecycle: create/delete one remote event and track its short code.

The booking ledger is in-memory only; it is a placeholder for a real
datastore and does not survive restarts.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from slotbot_lite.calendar.lite_ics_codec import build_booking_calendar
from slotbot_lite.calendar.lite_models import BookingDetails
from slotbot_lite.core.exceptions import (
    BookingNotFoundError,
    BookingParseError,
    CalendarResolutionError,
    FetchError,
    UnconfirmedWriteError,
)
from slotbot_lite.core.timezone_utils import now_utc

from .protocols import CalendarStore

logger = logging.getLogger(__name__)

BOOKING_DATETIME_FORMAT = "%Y-%m-%d %H:%M"
EVENT_OBJECT_EXTENSION = ".ics"
BOOKING_CODE_LENGTH = 8


class ResolutionPolicy(str, Enum):
    """What to do when no calendar path can be resolved for a mutation."""

    STRICT = "strict"
    LENIENT = "lenient"


def new_booking_code() -> str:
    return uuid.uuid4().hex[:BOOKING_CODE_LENGTH]


def event_identifier(date_str: str, time_str: str) -> str:
    return f"{date_str}-{time_str}"


def parse_booking_start(date_str: str, time_str: str) -> datetime:
    """Parse booking date ("YYYY-MM-DD") and time ("HH:MM") as UTC.

    Raises:
        BookingParseError: If either value is malformed
    """
    try:
        parsed = datetime.strptime(f"{date_str} {time_str}", BOOKING_DATETIME_FORMAT)
    except (TypeError, ValueError) as e:
        raise BookingParseError("invalid date or time format") from e
    return parsed.replace(tzinfo=UTC)


def pick_calendar_path(calendars: list[str]) -> Optional[str]:
    """Prefer a calendar whose path contains "default", or the only one, else the first."""
    for path in calendars:
        if "default" in path or len(calendars) == 1:
            return path
    return calendars[0] if calendars else None


def object_path(calendar_path: str, code: str) -> str:
    if not calendar_path.endswith("/"):
        calendar_path += "/"
    return f"{calendar_path}{code}{EVENT_OBJECT_EXTENSION}"


class BookingLedger:
    """Two-way in-memory index between booking codes and event identifiers."""

    def __init__(self) -> None:
        self._by_code: dict[str, str] = {}
        self._by_identifier: dict[str, str] = {}

    def record(self, code: str, identifier: str) -> None:
        previous = self._by_code.get(code)
        if previous is not None:
            self._by_identifier.pop(previous, None)
        # Last write wins for a slot booked twice
        self._by_code[code] = identifier
        self._by_identifier[identifier] = code

    def lookup(self, code: str) -> Optional[str]:
        return self._by_code.get(code)

    def code_for(self, identifier: str) -> Optional[str]:
        return self._by_identifier.get(identifier)

    def remove(self, code: str) -> None:
        identifier = self._by_code.pop(code, None)
        if identifier is not None and self._by_identifier.get(identifier) == code:
            del self._by_identifier[identifier]

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __len__(self) -> int:
        return len(self._by_code)


@dataclass(frozen=True)
class BookingSettings:
    booking_calendar: Optional[str] = None
    resolution_policy: ResolutionPolicy = ResolutionPolicy.STRICT
    accept_unconfirmed_writes: bool = True

    @classmethod
    def from_config(cls, config: object) -> BookingSettings:
        return cls(
            booking_calendar=getattr(config, "booking_calendar", None) or None,
            resolution_policy=ResolutionPolicy(
                getattr(config, "calendar_resolution_policy", ResolutionPolicy.STRICT.value)
            ),
            accept_unconfirmed_writes=bool(getattr(config, "accept_unconfirmed_writes", True)),
        )


class BookingService:
    """Books and cancels single one-hour meetings in the remote calendar."""

    def __init__(
        self,
        store: CalendarStore,
        ledger: BookingLedger,
        settings: BookingSettings,
        code_factory: Callable[[], str] = new_booking_code,
        time_provider: Callable[[], datetime] = now_utc,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.settings = settings
        self.code_factory = code_factory
        self.time_provider = time_provider

    async def resolve_calendar_path(self) -> Optional[str]:
        """Calendar collection that receives bookings.

        Returns None only under the lenient policy when resolution failed.

        Raises:
            CalendarResolutionError: Under the strict policy when resolution failed
        """
        if self.settings.booking_calendar:
            return self.settings.booking_calendar

        try:
            path = pick_calendar_path(await self.store.find_calendars())
            reason = "no calendar found"
        except FetchError as e:
            path = None
            reason = str(e)

        if path is not None:
            return path
        if self.settings.resolution_policy is ResolutionPolicy.LENIENT:
            logger.warning("Calendar path resolution failed (%s); continuing leniently", reason)
            return None
        raise CalendarResolutionError("Could not resolve booking calendar", reason=reason)

    def _new_code(self) -> str:
        code = self.code_factory()
        while code in self.ledger:
            code = self.code_factory()
        return code

    async def book(self, date_str: str, time_str: str, details: BookingDetails) -> str:
        """Create the remote event and return its cancellation code.

        Raises:
            BookingParseError: Bad date/time
            CalendarResolutionError: No booking calendar (strict policy)
            RemoteMutationError: The store rejected or never received the event
        """
        start = parse_booking_start(date_str, time_str)
        code = self._new_code()
        logger.info("Creating booking %s: %s %s", code, date_str, time_str)

        calendar_path = await self.resolve_calendar_path()
        if calendar_path is not None:
            body = build_booking_calendar(code, start, details, stamp=self.time_provider())
            path = object_path(calendar_path, code)
            try:
                await self.store.put_event(path, body)
            except UnconfirmedWriteError as e:
                if not self.settings.accept_unconfirmed_writes:
                    raise
                logger.warning("Booking %s recorded without confirmation: %s", code, e.reason)
            else:
                logger.info("Booking %s created at %s", code, path)

        identifier = event_identifier(date_str, time_str)
        self.ledger.record(code, identifier)
        logger.info("Booking successfully created with code: %s; EID %s", code, identifier)
        return code

    async def cancel(self, code: str) -> None:
        """Delete the remote event behind ``code`` and forget the code.

        Raises:
            BookingNotFoundError: Unknown code, or its identifier maps to no code
            CalendarResolutionError: No booking calendar (strict policy)
            RemoteMutationError: The store failed to delete the event
        """
        identifier = self.ledger.lookup(code)
        if identifier is None:
            raise BookingNotFoundError("Invalid cancellation code")

        resolved_code = self.ledger.code_for(identifier)
        if resolved_code is None:
            raise BookingNotFoundError(f"no booking found for event: {identifier}")
        if resolved_code != code:
            # Slot was booked again; only this code's own object may go
            logger.info("Booking %s shares %s with newer booking %s", code, identifier, resolved_code)

        logger.info("Cancelling booking %s (%s)", code, identifier)
        calendar_path = await self.resolve_calendar_path()
        if calendar_path is not None:
            await self.store.delete_event(object_path(calendar_path, code))

        self.ledger.remove(code)
        logger.info("Booking %s cancelled", code)
