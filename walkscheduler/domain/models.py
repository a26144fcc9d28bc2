"""
Domain models for time ranges, bookings and admission decisions.
"""

from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Dict, List, Optional

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidTimeRangeError, ValidationError


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must not be after end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidTimeRangeError(
                f"Start time {self.start} must not be after end time {self.end}"
            )

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ranges do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        """Check if another range lies entirely inside this one."""
        return self.start <= other.start and other.end <= self.end

    def format_display(self) -> Dict[str, str]:
        """Format as a display window with local ``HH:mm`` start and end."""
        return {
            "start": self.start.format("HH:mm"),
            "end": self.end.format("HH:mm"),
        }

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class WorkdayEnvelope:
    """Working-hours window for one date, inside which availability is offered."""
    date: Date
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidTimeRangeError(
                f"Workday for {self.date} starts at {self.start} after it ends at {self.end}"
            )

    def as_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


@dataclass
class WorkingHours:
    """
    Configuration for working hours.
    """
    start_time: time
    end_time: time
    exclude_weekdays: List[int]  # 0=Monday, 6=Sunday
    timezone: str = "Europe/London"

    def is_working_day(self, day: Date) -> bool:
        """Check if a given date falls on a working day."""
        return day.weekday() not in self.exclude_weekdays

    def envelope_for(self, day: Date) -> WorkdayEnvelope:
        """Build the working-hours envelope for a specific day in the business timezone."""
        start = pendulum.datetime(
            day.year, day.month, day.day,
            self.start_time.hour, self.start_time.minute,
            tz=self.timezone,
        )
        end = pendulum.datetime(
            day.year, day.month, day.day,
            self.end_time.hour, self.end_time.minute,
            tz=self.timezone,
        )
        return WorkdayEnvelope(date=day, start=start, end=end)


@dataclass(frozen=True)
class CalendarEvent:
    """
    Raw item from the calendar feed.

    ``start`` and ``end`` are ISO-8601 strings and may be missing; they are
    validated when the event is turned into a busy range.
    """
    event_id: str = ""
    start: Optional[str] = None
    end: Optional[str] = None
    summary: str = ""
    description: str = ""
    all_day: bool = False


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    COMPLETED_PAID = "completed & paid"
    CANCELLED = "cancelled"


class BookingType(str, Enum):
    SINGLE = "single"
    MULTI_DAY = "multi_day"


class ServiceType(str, Enum):
    MEET_GREET = "meet_greet"
    SOLO = "solo"
    QUICK = "quick"
    SITTING = "sitting"

    @property
    def is_walk(self) -> bool:
        return self in WALK_SERVICES

    @property
    def is_capped(self) -> bool:
        """Whether bookings of this type count toward the sitting walk cap."""
        return self in CAPPED_WALK_SERVICES


WALK_SERVICES = frozenset({ServiceType.MEET_GREET, ServiceType.SOLO, ServiceType.QUICK})
CAPPED_WALK_SERVICES = frozenset({ServiceType.SOLO, ServiceType.QUICK})


@dataclass(frozen=True)
class Booking:
    """A booking row as projected out of the booking store."""
    id: int
    start: DateTime
    end: DateTime
    service_type: ServiceType
    status: BookingStatus = BookingStatus.CONFIRMED
    booking_type: BookingType = BookingType.SINGLE
    owner_id: Optional[int] = None
    series_id: Optional[str] = None
    series_index: Optional[int] = None
    calendar_event_id: Optional[str] = None

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidTimeRangeError(
                f"Booking {self.id} starts at {self.start} after it ends at {self.end}"
            )

    @property
    def date(self) -> Date:
        return self.start.date()

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    @property
    def is_confirmed(self) -> bool:
        return self.status is BookingStatus.CONFIRMED

    def spans(self, day: Date) -> bool:
        """Date-only containment, inclusive at both ends."""
        return self.start.date() <= day <= self.end.date()


@dataclass(frozen=True)
class BookingRequest:
    """A proposed booking that has not been admitted yet."""
    start: DateTime
    end: DateTime
    service_type: ServiceType
    booking_type: BookingType = BookingType.SINGLE
    owner_id: Optional[int] = None
    series_id: Optional[str] = None
    series_index: Optional[int] = None

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidTimeRangeError(
                f"Requested start {self.start} is after requested end {self.end}"
            )

    @property
    def date(self) -> Date:
        return self.start.date()

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


@dataclass(frozen=True)
class WalkLimitOverride:
    """
    Per-date override of the walk cap.

    ``max_walks=None`` means unlimited for that date. A missing override row
    means the configured default cap applies.
    """
    date: Date
    max_walks: Optional[int] = None

    def __post_init__(self):
        if self.max_walks is not None and self.max_walks < 0:
            raise ValidationError("max_walks must be a non-negative integer or None for unlimited")

    @property
    def is_unlimited(self) -> bool:
        return self.max_walks is None


class CapacityReason(str, Enum):
    WALK_LIMIT_REACHED = "walk_limit_reached"
    SLOT_TAKEN = "slot_taken"


REJECTION_MESSAGES = {
    CapacityReason.WALK_LIMIT_REACHED: (
        "We're fully booked for walks on this date while a dog sitting is in progress. "
        "Please choose another day."
    ),
    CapacityReason.SLOT_TAKEN: (
        "The requested time slot conflicts with another booking. Please pick a different time."
    ),
}


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check. Never persisted."""
    admitted: bool
    reason: Optional[CapacityReason] = None
    message: str = ""

    @classmethod
    def admit(cls) -> "AdmissionDecision":
        return cls(admitted=True)

    @classmethod
    def reject(cls, reason: CapacityReason, message: str = "") -> "AdmissionDecision":
        return cls(admitted=False, reason=reason, message=message or REJECTION_MESSAGES[reason])


class SittingState(str, Enum):
    NO_SITTING = "no_sitting"
    UNLIMITED = "unlimited"
    CAPPED = "capped"


@dataclass(frozen=True)
class WalkLimitStatus:
    """
    Walk-cap state for a single date.

    walk_limit is None when no cap applies (no sitting, or an unlimited override).
    """
    state: SittingState
    walk_limit: Optional[int] = None
    current_walk_count: int = 0

    @property
    def has_active_sitting(self) -> bool:
        return self.state is not SittingState.NO_SITTING

    @property
    def limit_reached(self) -> bool:
        if self.state is not SittingState.CAPPED:
            return False
        return self.current_walk_count >= self.walk_limit
