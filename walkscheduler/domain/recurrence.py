"""
Recurrence helpers for repeating walk bookings.
"""

from enum import Enum
from typing import Iterable, List, Optional, Sequence

from pendulum import Date, DateTime

from .exceptions import ValidationError
from .models import TimeRange

MAX_WEEKS_AHEAD = 12


class RecurrencePattern(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    CUSTOM = "custom"


def generate_target_dates(
    start_date: Date,
    weeks_ahead: int,
    pattern: RecurrencePattern,
    days_of_week: Optional[Sequence[int]] = None
) -> List[Date]:
    """
    Generate the dates a recurring booking would fall on.

    Args:
        start_date: First candidate date
        weeks_ahead: How many weeks to look ahead (capped at MAX_WEEKS_AHEAD)
        pattern: weekly, biweekly or custom
        days_of_week: ISO weekdays (1=Monday, 7=Sunday), only used for custom

    Returns:
        Dates strictly before start_date + weeks_ahead weeks
    """
    if weeks_ahead <= 0:
        raise ValidationError("weeks_ahead must be greater than zero")

    weeks = min(weeks_ahead, MAX_WEEKS_AHEAD)
    end_date = start_date.add(weeks=weeks)
    dates: List[Date] = []

    if pattern is RecurrencePattern.CUSTOM:
        wanted = set(days_of_week or [])
        invalid = [d for d in wanted if d not in range(1, 8)]
        if invalid:
            raise ValidationError(f"days_of_week must be between 1 and 7, got {sorted(invalid)}")

        current = start_date
        while current < end_date:
            if current.isoweekday() in wanted:
                dates.append(current)
            current = current.add(days=1)
        return dates

    step = 1 if pattern is RecurrencePattern.WEEKLY else 2
    current = start_date
    while current < end_date:
        dates.append(current)
        current = current.add(weeks=step)

    return dates


def find_alternative_times(
    windows: Iterable[TimeRange],
    duration_minutes: int,
    preferred_hour: int,
    step_minutes: int = 30
) -> List[DateTime]:
    """
    List start times that fit a booking inside the free windows.

    Candidates step through each window every ``step_minutes`` and are
    ordered by distance in hours from the preferred hour, then by time.
    """
    candidates: List[DateTime] = []

    for window in windows:
        current = window.start
        while current.add(minutes=duration_minutes) <= window.end:
            candidates.append(current)
            current = current.add(minutes=step_minutes)

    candidates.sort(key=lambda dt: (abs(dt.hour - preferred_hour), dt.format("HH:mm")))
    return candidates
