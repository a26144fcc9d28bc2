"""
Interval algebra for turning a day's busy events into offerable free windows.

This is pure domain logic without any external dependencies (no API calls,
no database, no I/O). The availability pipeline is:

1. Pad every busy event by the travel buffer (except at the workday edges)
2. Sort padded events by start
3. Merge overlapping or touching events
4. Invert the merged busy blocks within the workday envelope
"""

import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Sequence

import pendulum
from pendulum import DateTime

from .models import CalendarEvent, TimeRange, WorkdayEnvelope

logger = logging.getLogger(__name__)


def pad_event(event: TimeRange, buffer: timedelta, envelope: WorkdayEnvelope) -> TimeRange:
    """
    Widen a busy event by the travel buffer on each side.

    A side that already touches the envelope boundary is left alone: the
    first appointment of the day has nothing to travel from, and the last
    one has nothing to travel to.
    """
    start = event.start if event.start == envelope.start else event.start - buffer
    end = event.end if event.end == envelope.end else event.end + buffer
    return TimeRange(start=start, end=end)


def merge_overlapping(events: Sequence[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or touching ranges in a single left-to-right sweep.

    Input must be ordered by start. Touching ranges (next.start == end)
    are merged so no zero-length slivers survive.

    Example: [09:45-10:45, 10:25-11:15, 12:00-13:00] -> [09:45-11:15, 12:00-13:00]
    """
    if not events:
        return []

    merged: List[TimeRange] = []
    candidate = events[0]

    for current in events[1:]:
        if current.start <= candidate.end:
            candidate = TimeRange(
                start=candidate.start,
                end=max(candidate.end, current.end)
            )
        else:
            merged.append(candidate)
            candidate = current

    merged.append(candidate)
    return merged


def invert(merged_busy: Sequence[TimeRange], envelope: WorkdayEnvelope) -> List[TimeRange]:
    """
    Convert merged busy blocks to free windows within the envelope.

    Example:
    Envelope: 09:00 - 20:00
    Busy: [11:45-13:15]
    Result: [09:00-11:45, 13:15-20:00]
    """
    free_ranges: List[TimeRange] = []
    cursor = envelope.start

    for busy in merged_busy:
        if busy.start >= envelope.end:
            break

        if cursor < busy.start:
            free_ranges.append(TimeRange(start=cursor, end=busy.start))

        cursor = max(cursor, busy.end)

    if cursor < envelope.end:
        free_ranges.append(TimeRange(start=cursor, end=envelope.end))

    return free_ranges


def compute_availability(
    busy_events: Iterable[TimeRange],
    envelope: WorkdayEnvelope,
    buffer: timedelta
) -> List[TimeRange]:
    """
    Run the full pad -> sort -> merge -> invert pipeline.

    An empty busy list yields a single window covering the whole envelope.
    """
    padded = [pad_event(event, buffer, envelope) for event in busy_events]
    # sorted() is stable, so ties keep their feed order
    padded.sort(key=lambda r: r.start)
    return invert(merge_overlapping(padded), envelope)


def parse_timestamp(value: Optional[str], timezone: str) -> Optional[DateTime]:
    """
    Parse an ISO-8601 timestamp into the business timezone at millisecond resolution.

    Returns None when the value is missing or not a datetime.
    """
    if not value:
        return None

    try:
        parsed = pendulum.parse(value, tz=timezone)
    except (ValueError, TypeError):
        return None

    if not isinstance(parsed, DateTime):
        return None

    parsed = parsed.in_timezone(timezone)
    return parsed.set(microsecond=(parsed.microsecond // 1000) * 1000)


def busy_ranges_from_events(events: Iterable[CalendarEvent], timezone: str) -> List[TimeRange]:
    """
    Validate raw feed events and turn them into busy ranges.

    Events with a missing, unparseable or inverted start/end carry no
    information and are dropped with a warning instead of failing the day.
    """
    busy: List[TimeRange] = []

    for event in events:
        start = parse_timestamp(event.start, timezone)
        end = parse_timestamp(event.end, timezone)

        if start is None or end is None:
            logger.warning(
                "Dropping calendar event %r with missing or invalid timestamps (start=%r, end=%r)",
                event.event_id, event.start, event.end,
            )
            continue

        if start > end:
            logger.warning(
                "Dropping calendar event %r that ends before it starts (%s > %s)",
                event.event_id, start, end,
            )
            continue

        busy.append(TimeRange(start=start, end=end))

    return busy


def filter_by_duration(windows: Iterable[TimeRange], min_duration_minutes: int) -> List[TimeRange]:
    """Keep only windows long enough to hold a booking of the given length."""
    return [w for w in windows if w.duration_minutes() >= min_duration_minutes]


def window_fits(windows: Iterable[TimeRange], candidate: TimeRange) -> bool:
    """Check whether the candidate lies entirely inside one free window."""
    return any(window.contains(candidate) for window in windows)


def format_windows(windows: Iterable[TimeRange]) -> List[Dict[str, str]]:
    """Format windows as display-ready ``{"start": "HH:mm", "end": "HH:mm"}`` pairs."""
    return [window.format_display() for window in windows]
