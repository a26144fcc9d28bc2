"""
Application service for computing offerable walk windows on a day.

The service fetches the day's events through a calendar feed adapter,
decides which of them actually block a walk, and delegates the interval
arithmetic to ``walkscheduler.domain.interval_algebra``. The feed is a
simple protocol so tests and the CLI's mock mode can swap it out.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Dict, List, Optional, Protocol

import pendulum
from pendulum import Date, DateTime

from ..domain import interval_algebra
from ..domain.models import CalendarEvent, ServiceType, TimeRange, WorkingHours

logger = logging.getLogger(__name__)

MULTI_DAY_MARKERS = ("Multi-Day Dog Sitting", "Multi-day booking", "Booking Type: Multi-Day")
SITTING_MARKER = "Dog Sitting"

_DURATION_MINUTES = re.compile(r"Duration:\s*(\d+)\s*minutes", re.IGNORECASE)
_DURATION_HOURS = re.compile(r"Duration:\s*(\d+)\s*hours?", re.IGNORECASE)


class CalendarFeedProtocol(Protocol):
    """Protocol describing the calendar feed behaviour needed by the service."""

    def list_events(
        self,
        start_time: DateTime,
        end_time: DateTime,
        timezone: str,
    ) -> List[CalendarEvent]:
        """Return raw events overlapping the window."""


def _event_text(event: CalendarEvent) -> str:
    return f"{event.summary}\n{event.description}"


def is_multi_day_sitting(event: CalendarEvent) -> bool:
    text = _event_text(event)
    return any(marker in text for marker in MULTI_DAY_MARKERS)


def sitting_duration_minutes(event: CalendarEvent) -> Optional[int]:
    """Read ``Duration: N minutes`` or ``Duration: N hours`` from the description."""
    minutes = _DURATION_MINUTES.search(event.description)
    if minutes:
        return int(minutes.group(1))
    hours = _DURATION_HOURS.search(event.description)
    if hours:
        return int(hours.group(1)) * 60
    return None


def blocks_whole_day(event: CalendarEvent) -> bool:
    """An all-day event blocks the day unless it is a dog sitting."""
    if not event.all_day:
        return False
    return SITTING_MARKER not in _event_text(event) and not is_multi_day_sitting(event)


def blocks_walks(event: CalendarEvent, long_sitting_minutes: int) -> bool:
    """
    Decide whether a timed event keeps the walker busy.

    The dog stays home during a multi-day sitting and during a long
    single-day sitting, so the walker is free to take other walks.
    """
    if event.all_day:
        return False
    if is_multi_day_sitting(event):
        return False
    if SITTING_MARKER in _event_text(event):
        duration = sitting_duration_minutes(event)
        if duration is not None and duration >= long_sitting_minutes:
            return False
    return True


class AvailabilityService:
    """
    Computes free walk windows for a date.

    The travel buffer is 15 minutes by default and widens for owners who
    live outside the usual catchment area.
    """

    def __init__(
        self,
        calendar_feed: CalendarFeedProtocol,
        working_hours: WorkingHours,
        travel_buffer_minutes: int = 15,
        extended_travel_buffer_minutes: int = 30,
        long_sitting_minutes: int = 360,
    ) -> None:
        self._calendar_feed = calendar_feed
        self._working_hours = working_hours
        self._travel_buffer_minutes = travel_buffer_minutes
        self._extended_travel_buffer_minutes = extended_travel_buffer_minutes
        self._long_sitting_minutes = long_sitting_minutes

    @property
    def working_hours(self) -> WorkingHours:
        return self._working_hours

    def travel_buffer(self, extended_travel: bool = False) -> timedelta:
        minutes = self._extended_travel_buffer_minutes if extended_travel else self._travel_buffer_minutes
        return timedelta(minutes=minutes)

    def fetch_events(self, day: Date) -> List[CalendarEvent]:
        """Fetch every event touching ``day`` in the business timezone."""
        timezone = self._working_hours.timezone
        day_start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
        return self._calendar_feed.list_events(
            start_time=day_start,
            end_time=day_start.add(days=1),
            timezone=timezone,
        )

    def available_windows(
        self,
        day: Date,
        *,
        service_type: Optional[ServiceType] = None,
        extended_travel: bool = False,
        exclude_event_id: Optional[str] = None,
        min_duration_minutes: int = 0,
    ) -> List[TimeRange]:
        """
        Retrieve the day's events and compute offerable windows.

        Args:
            day: Date to check
            service_type: Walk services get nothing on non-working weekdays
            extended_travel: Use the extended travel buffer
            exclude_event_id: Calendar event to ignore (the booking being rescheduled)
            min_duration_minutes: Drop windows shorter than this

        Raises:
            CalendarAPIError: If the feed cannot be read
        """
        if service_type is not None and service_type.is_walk and not self._working_hours.is_working_day(day):
            logger.debug("%s is not a working day for walk services", day)
            return []

        events = [
            event for event in self.fetch_events(day)
            if not exclude_event_id or event.event_id != exclude_event_id
        ]

        if any(blocks_whole_day(event) for event in events):
            logger.info("All-day event blocks walks on %s", day)
            return []

        blocking = [event for event in events if blocks_walks(event, self._long_sitting_minutes)]
        busy = interval_algebra.busy_ranges_from_events(blocking, self._working_hours.timezone)

        envelope = self._working_hours.envelope_for(day)
        windows = interval_algebra.compute_availability(
            busy, envelope, self.travel_buffer(extended_travel)
        )

        if min_duration_minutes:
            windows = interval_algebra.filter_by_duration(windows, min_duration_minutes)

        return windows

    def display_windows(self, day: Date, **kwargs) -> List[Dict[str, str]]:
        """Available windows as ``{"start": "HH:mm", "end": "HH:mm"}`` pairs."""
        return interval_algebra.format_windows(self.available_windows(day, **kwargs))
