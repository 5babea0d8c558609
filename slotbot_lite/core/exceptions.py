"""Exception hierarchy for slotbot_lite.

Specific exception types let the HTTP layer map failures onto status codes
and keep per-unit degradation (per calendar, per date) explicit in the
fetch and sync code paths.
"""

from __future__ import annotations

from typing import Optional


class SlotBotError(Exception):
    """Base exception for all slotbot_lite errors."""


class ConfigError(SlotBotError):
    """Configuration file could not be loaded or has an invalid shape."""


class ParseError(SlotBotError):
    """Malformed date, time or rule input.

    Recurrence rules never raise this (they degrade field by field); it is
    raised for booking input where a bad value cannot be defaulted.
    """


class BookingParseError(ParseError):
    """Booking date or time could not be parsed.

    Should result in HTTP 400 Bad Request response.
    """


class FetchError(SlotBotError):
    """Remote calendar query failed.

    When raised for a whole date, ``failures`` carries the per-calendar
    errors that led to it.
    """

    def __init__(self, message: str, failures: Optional[list[Exception]] = None):
        super().__init__(message)
        self.failures: list[Exception] = list(failures or [])


class CalendarQueryError(FetchError):
    """Query against a single calendar failed."""

    def __init__(self, calendar: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{calendar}: {message}")
        self.calendar = calendar
        self.status_code = status_code


class RemoteMutationError(SlotBotError):
    """Creating or deleting a remote calendar object failed.

    Should result in HTTP 502 Bad Gateway response.
    """

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason or message


class UnconfirmedWriteError(RemoteMutationError):
    """A write was sent to the calendar store but no response confirmed it.

    Raised for read/write timeouts and connections dropped after the request
    went out: the object may or may not exist remotely.
    """


class CalendarResolutionError(RemoteMutationError):
    """No calendar path could be resolved for a booking or cancellation."""


class NotFoundError(SlotBotError):
    """Requested record does not exist."""


class BookingNotFoundError(NotFoundError):
    """Cancellation code is unknown, or its identifier maps back to no code.

    Should result in HTTP 404 Not Found response.
    """
