"""
Booking creation, rescheduling, cancellation and recurring-series checks.

Every write goes through ``BookingStoreProtocol.transaction(day)`` with the
admission decision evaluated inside it, so the walk count cannot change
between the check and the insert.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field, replace
from datetime import time
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence

import pendulum
from pendulum import Date, DateTime

from ..domain.exceptions import BookingNotFoundError, ValidationError
from ..domain.interval_algebra import window_fits
from ..domain.models import (
    AdmissionDecision,
    Booking,
    BookingRequest,
    BookingStatus,
    ServiceType,
    TimeRange,
)
from ..domain.recurrence import RecurrencePattern, find_alternative_times, generate_target_dates
from .admission import AdmissionController, BookingStoreProtocol
from .availability import AvailabilityService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingResult:
    """Admission decision plus the stored booking when admitted."""
    decision: AdmissionDecision
    booking: Optional[Booking] = None

    @property
    def admitted(self) -> bool:
        return self.decision.admitted


class DateStatus(str, Enum):
    AVAILABLE = "available"
    CONFLICT = "conflict"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class RecurringRequest:
    """A proposed repeating walk."""
    service_type: ServiceType
    duration_minutes: int
    pattern: RecurrencePattern
    preferred_time: time
    start_date: Date
    weeks_ahead: int = 12
    days_of_week: Optional[Sequence[int]] = None
    owner_id: Optional[int] = None
    extended_travel: bool = False

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValidationError("duration_minutes must be greater than zero")


@dataclass(frozen=True)
class RecurringDate:
    date: Date
    status: DateStatus
    requested_time: str
    reason: str = ""
    alternatives: List[str] = field(default_factory=list)


@dataclass
class RecurringCheckResult:
    dates: List[RecurringDate] = field(default_factory=list)

    def with_status(self, status: DateStatus) -> List[RecurringDate]:
        return [d for d in self.dates if d.status is status]

    def summary(self) -> Dict[str, int]:
        return {
            "total_requested": len(self.dates),
            "available": len(self.with_status(DateStatus.AVAILABLE)),
            "conflicts": len(self.with_status(DateStatus.CONFLICT)),
            "blocked": len(self.with_status(DateStatus.BLOCKED)),
        }


class BookingService:
    """
    Orchestrates admission and persistence of bookings.

    ``enforce_walk_cap=False`` is passed by the admin booking flow; the
    public flow leaves it at True.
    """

    def __init__(
        self,
        booking_store: BookingStoreProtocol,
        admission: AdmissionController,
        availability: Optional[AvailabilityService] = None,
    ) -> None:
        self._booking_store = booking_store
        self._admission = admission
        self._availability = availability

    def create_booking(
        self,
        request: BookingRequest,
        *,
        enforce_walk_cap: bool = True,
    ) -> BookingResult:
        """Admit and insert a booking as one unit per date."""
        if request.end <= request.start:
            raise ValidationError("End time must be after start time")

        with self._booking_store.transaction(request.date):
            decision = self._admission.decide(request, enforce_walk_cap=enforce_walk_cap)
            if not decision.admitted:
                logger.info("Booking on %s rejected: %s", request.date, decision.reason.value)
                return BookingResult(decision=decision)

            booking = self._booking_store.add(request)

        logger.info("Booking %s admitted for %s", booking.id, booking.time_range)
        return BookingResult(decision=decision, booking=booking)

    def reschedule_booking(
        self,
        booking_id: int,
        new_start: DateTime,
        new_end: DateTime,
        *,
        enforce_walk_cap: bool = True,
    ) -> BookingResult:
        """
        Move a confirmed booking, ignoring the booking itself in every check.

        Both the old and the new date are held for the whole move, and the
        booking is read again under them before it is written.

        Raises:
            BookingNotFoundError: If the booking does not exist or is not confirmed
            ValidationError: If the new end is not after the new start
        """
        if new_end <= new_start:
            raise ValidationError("End time must be after start time")

        with self._locked_booking(booking_id, new_start.date()) as booking:
            if not booking.is_confirmed:
                raise BookingNotFoundError(f"Booking {booking_id} is not available for rescheduling")

            request = BookingRequest(
                start=new_start,
                end=new_end,
                service_type=booking.service_type,
                booking_type=booking.booking_type,
                owner_id=booking.owner_id,
                series_id=booking.series_id,
                series_index=booking.series_index,
            )
            decision = self._admission.decide(
                request,
                enforce_walk_cap=enforce_walk_cap,
                exclude_booking_id=booking_id,
            )
            if not decision.admitted:
                return BookingResult(decision=decision, booking=booking)

            updated = self._booking_store.update(replace(booking, start=new_start, end=new_end))

        logger.info("Booking %s moved to %s", booking_id, updated.time_range)
        return BookingResult(decision=decision, booking=updated)

    def cancel_booking(self, booking_id: int) -> Booking:
        """Cancel a confirmed booking, freeing its walk slot."""
        with self._locked_booking(booking_id) as booking:
            if booking.status is BookingStatus.CANCELLED:
                return booking
            if not booking.is_confirmed:
                raise ValidationError(f"Booking {booking_id} is {booking.status.value} and cannot be cancelled")

            cancelled = self._booking_store.update(replace(booking, status=BookingStatus.CANCELLED))

        logger.info("Booking %s cancelled", booking_id)
        return cancelled

    @contextmanager
    def _locked_booking(self, booking_id: int, *extra_days: Date) -> Iterator[Booking]:
        """
        Hold the transactions for the booking's date and ``extra_days``.

        Dates are entered in sorted order so two writers never wait on each
        other in opposite orders. The booking is re-read under the locks; if
        it moved to another date in the meantime the locks are taken again.
        """
        while True:
            day = self._booking_store.get(booking_id).date
            with ExitStack() as stack:
                for locked_day in sorted({day, *extra_days}):
                    stack.enter_context(self._booking_store.transaction(locked_day))
                booking = self._booking_store.get(booking_id)
                if booking.date == day:
                    yield booking
                    return

    def check_recurring(self, request: RecurringRequest) -> RecurringCheckResult:
        """
        Check every date of a recurring walk.

        Each date is blocked (non-working day, walk limit reached, fully
        booked), available (preferred time fits a free window) or a
        conflict with alternative start times.
        """
        if self._availability is None:
            raise ValidationError("Recurring checks need an availability service")

        working_hours = self._availability.working_hours
        requested_time = request.preferred_time.strftime("%H:%M")
        result = RecurringCheckResult()

        for day in generate_target_dates(
            request.start_date, request.weeks_ahead, request.pattern, request.days_of_week
        ):
            if not working_hours.is_working_day(day):
                result.dates.append(RecurringDate(
                    date=day, status=DateStatus.BLOCKED, requested_time=requested_time,
                    reason="Walks not available on weekends",
                ))
                continue

            if request.service_type.is_capped:
                status = self._admission.walk_limit_status(day)
                if status.limit_reached:
                    result.dates.append(RecurringDate(
                        date=day, status=DateStatus.BLOCKED, requested_time=requested_time,
                        reason=(
                            f"Walk limit reached ({status.current_walk_count}/{status.walk_limit} "
                            f"during active sitting)"
                        ),
                    ))
                    continue

            windows = self._availability.available_windows(
                day,
                extended_travel=request.extended_travel,
                min_duration_minutes=request.duration_minutes,
            )
            preferred = self._slot_on(day, request.preferred_time, request.duration_minutes, working_hours.timezone)

            if window_fits(windows, preferred):
                result.dates.append(RecurringDate(
                    date=day, status=DateStatus.AVAILABLE, requested_time=requested_time,
                ))
                continue

            alternatives = find_alternative_times(
                windows, request.duration_minutes, request.preferred_time.hour
            )
            if alternatives:
                result.dates.append(RecurringDate(
                    date=day, status=DateStatus.CONFLICT, requested_time=requested_time,
                    reason="Requested time not available",
                    alternatives=[dt.format("HH:mm") for dt in alternatives],
                ))
            else:
                result.dates.append(RecurringDate(
                    date=day, status=DateStatus.BLOCKED, requested_time=requested_time,
                    reason="Fully booked on this date",
                ))

        return result

    def create_series(
        self,
        request: RecurringRequest,
        *,
        enforce_walk_cap: bool = True,
    ) -> List[BookingResult]:
        """Book every available date of a recurring walk under one series id."""
        check = self.check_recurring(request)
        series_id = uuid.uuid4().hex
        timezone = self._availability.working_hours.timezone
        results: List[BookingResult] = []

        for index, recurring_date in enumerate(check.with_status(DateStatus.AVAILABLE), start=1):
            slot = self._slot_on(
                recurring_date.date, request.preferred_time, request.duration_minutes, timezone
            )
            results.append(self.create_booking(
                BookingRequest(
                    start=slot.start,
                    end=slot.end,
                    service_type=request.service_type,
                    owner_id=request.owner_id,
                    series_id=series_id,
                    series_index=index,
                ),
                enforce_walk_cap=enforce_walk_cap,
            ))

        logger.info(
            "Series %s: %d of %d dates booked",
            series_id, sum(1 for r in results if r.admitted), len(check.dates),
        )
        return results

    @staticmethod
    def _slot_on(day: Date, start: time, duration_minutes: int, timezone: str) -> TimeRange:
        slot_start = pendulum.datetime(day.year, day.month, day.day, start.hour, start.minute, tz=timezone)
        return TimeRange(start=slot_start, end=slot_start.add(minutes=duration_minutes))
