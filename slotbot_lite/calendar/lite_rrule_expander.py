"""Occurrence expansion for SlotBot Lite.

Turns one event (possibly recurring) into the concrete occurrences whose
start falls inside a half-open window ``[window_start, window_end)``.
Expansion never raises: unknown frequencies, rules that stop advancing and
the iteration ceiling all end expansion quietly.

MONTHLY and YEARLY steps are taken from the original start and clamp to the
last day of a shorter month (Jan 31 gives Feb 29, then Mar 31). Day overflow
is never carried into the following month, so Jan 31 never yields Mar 2.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from slotbot_lite.core.timezone_utils import ensure_utc

from .lite_models import CalendarEvent, Frequency, RecurrenceRule

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 1000


def _in_window(moment: datetime, window_start: datetime, window_end: datetime) -> bool:
    return window_start <= moment < window_end


def next_weekly_by_day(current: datetime, weekdays: frozenset[int], interval: int) -> datetime:
    """Next day after ``current`` whose weekday is in ``weekdays``.

    Searches at most ``7 * interval`` days ahead; falls back to
    ``current + interval`` weeks when nothing matches (e.g. empty set).
    """
    if weekdays:
        candidate = current + timedelta(days=1)
        for _ in range(7 * interval):
            if candidate.weekday() in weekdays:
                return candidate
            candidate += timedelta(days=1)
    return current + timedelta(weeks=interval)


def next_occurrence_start(
    anchor: datetime, current: datetime, step: int, rule: RecurrenceRule
) -> Optional[datetime]:
    """Candidate start following ``current``, or None if the rule cannot advance.

    MONTHLY and YEARLY are computed from the anchor (``step`` is the number of
    advances so far) so a month-end anchor clamps per month instead of drifting.
    """
    freq = rule.freq
    if freq is Frequency.DAILY:
        return current + timedelta(days=rule.interval)
    if freq is Frequency.WEEKLY:
        if rule.by_day:
            return next_weekly_by_day(current, rule.by_weekday_numbers, rule.interval)
        return current + timedelta(weeks=rule.interval)
    if freq is Frequency.MONTHLY:
        return anchor + relativedelta(months=rule.interval * (step + 1))
    if freq is Frequency.YEARLY:
        return anchor + relativedelta(years=rule.interval * (step + 1))
    return None


def expand_event(
    event: CalendarEvent,
    window_start: datetime,
    window_end: datetime,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[CalendarEvent]:
    """Expand an event into occurrences starting inside [window_start, window_end).

    Args:
        event: Source event; never modified
        window_start: Inclusive window start
        window_end: Exclusive window end
        max_iterations: Hard ceiling on expansion cycles

    Returns:
        Occurrences in chronological order. A non-recurring event is returned
        as-is when its start is in the window.
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)

    rule = event.rrule
    if rule is None:
        return [event] if _in_window(event.start, window_start, window_end) else []

    occurrences: list[CalendarEvent] = []
    anchor = event.start
    current = anchor
    emitted = 0

    for step in range(max_iterations):
        if rule.count > 0 and emitted >= rule.count:
            break
        if rule.until is not None and current > rule.until:
            break
        if current > window_end:
            break

        if _in_window(current, window_start, window_end):
            occurrences.append(event.as_occurrence(current))
            emitted += 1

        following = next_occurrence_start(anchor, current, step, rule)
        if following is None:
            logger.debug(
                "Stopping expansion of %r: unsupported frequency %r", event.uid, rule.frequency
            )
            break
        if following <= current:
            logger.debug("Stopping expansion of %r: rule does not advance", event.uid)
            break
        current = following
    else:
        logger.debug(
            "Expansion of %r hit the %d iteration ceiling", event.uid, max_iterations
        )

    return occurrences


def expand_events(
    events: list[CalendarEvent],
    window_start: datetime,
    window_end: datetime,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[CalendarEvent]:
    """Expand every event against the same window and concatenate the results."""
    expanded: list[CalendarEvent] = []
    for event in events:
        expanded.extend(expand_event(event, window_start, window_end, max_iterations))
    return expanded
