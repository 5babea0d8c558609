"""iCalendar encoding/decoding for SlotBot Lite.

Converts VEVENT components returned by the calendar store into
``CalendarEvent`` models and builds the VCALENDAR document for a booking.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from icalendar import Calendar, Event as ICalEvent

from slotbot_lite.core.timezone_utils import date_to_utc_datetime, ensure_utc

from .lite_models import DEFAULT_EVENT_DURATION, BookingDetails, CalendarEvent
from .lite_rrule_parser import parse_rrule

logger = logging.getLogger(__name__)

PRODUCT_ID = "-//SlotBot//EN"
UID_DOMAIN = "slotbot"

# VEVENT properties carried through expansion untouched (lower-cased keys)
PASSTHROUGH_PROPERTIES = ("SUMMARY", "DESCRIPTION", "STATUS", "LOCATION")


def _to_utc(value: Any) -> datetime:
    """Convert a decoded DTSTART/DTEND value (date or datetime) to aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return date_to_utc_datetime(value)
    raise ValueError(f"Unsupported date value: {value!r}")


def _rrule_text(component: Any) -> Optional[str]:
    rrule_prop = component.get("RRULE")
    if rrule_prop is None:
        return None
    if isinstance(rrule_prop, list):
        # Multiple RRULEs are rare; the first one drives expansion
        rrule_prop = rrule_prop[0]
    to_ical = getattr(rrule_prop, "to_ical", None)
    raw = to_ical() if callable(to_ical) else rrule_prop
    return raw.decode() if isinstance(raw, bytes) else str(raw)


def event_from_component(component: Any, calendar: str = "") -> CalendarEvent:
    """Build a CalendarEvent from an icalendar VEVENT component.

    Raises:
        ValueError: If DTSTART is missing or not a date/datetime
    """
    dtstart = component.get("DTSTART")
    if dtstart is None:
        raise ValueError("Event missing DTSTART")
    start = _to_utc(dtstart.dt)

    dtend = component.get("DTEND")
    duration = component.get("DURATION")
    if dtend is not None:
        end = _to_utc(dtend.dt)
    elif duration is not None and isinstance(getattr(duration, "dt", None), timedelta):
        end = start + duration.dt
    else:
        end = start + DEFAULT_EVENT_DURATION

    properties = {
        name.lower(): str(component.get(name))
        for name in PASSTHROUGH_PROPERTIES
        if component.get(name) is not None
    }

    return CalendarEvent(
        uid=str(component.get("UID", "")),
        start=start,
        end=end,
        rrule=parse_rrule(_rrule_text(component)),
        properties=properties,
        calendar=calendar,
    )


def parse_calendar_data(ics_content: str | bytes, calendar: str = "") -> list[CalendarEvent]:
    """Parse every VEVENT of an iCalendar document.

    Components that cannot be converted are logged and skipped.

    Raises:
        ValueError: If the document itself is not valid iCalendar
    """
    parsed = Calendar.from_ical(ics_content)
    events: list[CalendarEvent] = []
    for component in parsed.walk("VEVENT"):
        try:
            events.append(event_from_component(component, calendar))
        except ValueError as e:
            logger.warning(
                "Skipping VEVENT %r from %s: %s", str(component.get("UID", "")), calendar or "?", e
            )
    return events


def booking_description(details: BookingDetails, code: str) -> str:
    return (
        f"Who are you?: {details.full_name}\n"
        f"Contact method: {details.contact_info}\n"
        f"Cancellation code: {code}"
    )


def build_booking_calendar(
    code: str,
    start: datetime,
    details: BookingDetails,
    stamp: datetime,
    duration: timedelta = DEFAULT_EVENT_DURATION,
) -> bytes:
    """Serialize a single non-recurring booking event wrapped in a VCALENDAR."""
    start = ensure_utc(start)

    cal = Calendar()
    cal.add("version", "2.0")
    cal.add("prodid", PRODUCT_ID)

    event = ICalEvent()
    event.add("uid", f"{code}@{UID_DOMAIN}")
    event.add("dtstamp", ensure_utc(stamp))
    event.add("dtstart", start)
    event.add("dtend", start + duration)
    event.add("summary", details.topic)
    event.add("description", booking_description(details, code))
    event.add("status", "CONFIRMED")
    cal.add_component(event)

    return cal.to_ical()
