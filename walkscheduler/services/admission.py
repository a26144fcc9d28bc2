"""
Admission control for new and rescheduled bookings.

Two independent constraints are enforced:

- no direct double-booking of single appointments (overlap check)
- a cap on solo/quick walks per day while a multi-day sitting is active

The walk-cap state for a date is derived fresh on every request from the
booking and override stores; the controller keeps no state of its own.
Callers must run ``decide`` and the subsequent insert inside the booking
store's ``transaction(day)`` so two requests near the cap cannot both pass.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from typing import List, Optional, Protocol

import pendulum
from pendulum import Date, DateTime

from ..domain.models import (
    AdmissionDecision,
    Booking,
    BookingRequest,
    BookingType,
    CapacityReason,
    ServiceType,
    SittingState,
    TimeRange,
    WalkLimitOverride,
    WalkLimitStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_WALK_CAP = 4
DEFAULT_TIMEZONE = "Europe/London"


class BookingStoreProtocol(Protocol):
    """Booking persistence needed by admission and booking services."""

    def get(self, booking_id: int) -> Booking:
        """Return a booking by id or raise BookingNotFoundError."""

    def add(self, request: BookingRequest) -> Booking:
        """Insert a confirmed booking and return it with its new id."""

    def update(self, booking: Booking) -> Booking:
        """Replace an existing booking row."""

    def list_confirmed_overlapping(self, start: DateTime, end: DateTime) -> List[Booking]:
        """Return confirmed bookings whose time range overlaps [start, end)."""

    def list_active_sittings(self, day: Date) -> List[Booking]:
        """Return confirmed multi-day bookings whose date span contains ``day``."""

    def transaction(self, day: Date) -> AbstractContextManager:
        """Serialize admission and writes for one date."""


class WalkLimitOverrideStoreProtocol(Protocol):
    """Per-date walk cap overrides."""

    def get(self, day: Date) -> Optional[WalkLimitOverride]:
        """Return the override row for ``day`` or None if there is no row."""

    def list_range(self, start: Date, end: Date) -> List[WalkLimitOverride]:
        """Return overrides between start and end inclusive, ordered by date."""

    def upsert(self, day: Date, max_walks: Optional[int]) -> WalkLimitOverride:
        """Create or replace the override for ``day``."""

    def delete(self, day: Date) -> bool:
        """Remove the override for ``day``. Returns False when there was none."""


class AdmissionController:
    """
    Decides whether a proposed booking may be admitted.

    The default walk cap is passed in at construction so the controller can
    be tested without touching the environment.
    """

    def __init__(
        self,
        booking_store: BookingStoreProtocol,
        override_store: WalkLimitOverrideStoreProtocol,
        default_walk_cap: int = DEFAULT_WALK_CAP,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        if default_walk_cap < 0:
            raise ValueError("default_walk_cap must not be negative")
        self._booking_store = booking_store
        self._override_store = override_store
        self._default_walk_cap = default_walk_cap
        self._timezone = timezone

    @property
    def default_walk_cap(self) -> int:
        return self._default_walk_cap

    def walk_limit_status(
        self,
        day: Date,
        exclude_booking_id: Optional[int] = None,
    ) -> WalkLimitStatus:
        """
        Determine the walk-cap state for a date.

        1. No confirmed multi-day sitting spans the date -> no sitting
        2. Override row with max_walks=None -> unlimited
        3. Override row with a number, else the default cap -> capped,
           with the count of confirmed solo/quick walks starting that day

        Store failures propagate; nothing here defaults to "admitted".
        """
        if not self._booking_store.list_active_sittings(day):
            return WalkLimitStatus(state=SittingState.NO_SITTING)

        override = self._override_store.get(day)
        if override is not None and override.is_unlimited:
            return WalkLimitStatus(state=SittingState.UNLIMITED)

        walk_limit = override.max_walks if override is not None else self._default_walk_cap
        walk_count = self.count_walks(day, exclude_booking_id=exclude_booking_id)

        return WalkLimitStatus(
            state=SittingState.CAPPED,
            walk_limit=walk_limit,
            current_walk_count=walk_count,
        )

    def count_walks(self, day: Date, exclude_booking_id: Optional[int] = None) -> int:
        """Count confirmed solo/quick bookings that start on ``day``."""
        day_start = pendulum.datetime(day.year, day.month, day.day, tz=self._timezone)
        bookings = self._booking_store.list_confirmed_overlapping(
            day_start, day_start.add(days=1)
        )
        return sum(
            1 for booking in bookings
            if booking.service_type.is_capped
            and booking.start.in_timezone(self._timezone).date() == day
            and booking.id != exclude_booking_id
        )

    def check_walk_cap(
        self,
        day: Date,
        *,
        service_type: ServiceType = ServiceType.SOLO,
        enforce_walk_cap: bool = True,
        exclude_booking_id: Optional[int] = None,
    ) -> AdmissionDecision:
        """
        Apply the walk cap for a proposed booking on ``day``.

        ``enforce_walk_cap=False`` is the admin path: staff know the real
        capacity and are never blocked here.
        """
        if not enforce_walk_cap or not service_type.is_capped:
            return AdmissionDecision.admit()

        status = self.walk_limit_status(day, exclude_booking_id=exclude_booking_id)

        if status.limit_reached:
            logger.info(
                "Walk limit reached for %s (%d/%d during active sitting)",
                day, status.current_walk_count, status.walk_limit,
            )
            return AdmissionDecision.reject(CapacityReason.WALK_LIMIT_REACHED)

        return AdmissionDecision.admit()

    def check_overlap(
        self,
        time_range: TimeRange,
        exclude_booking_id: Optional[int] = None,
    ) -> AdmissionDecision:
        """
        Reject a range that overlaps a confirmed single booking.

        Multi-day sittings run in the background and never count as overlap.
        Touching bookings (one ends when the other starts) are allowed.
        """
        existing = self._booking_store.list_confirmed_overlapping(time_range.start, time_range.end)

        for booking in existing:
            if booking.id == exclude_booking_id:
                continue
            if booking.booking_type is BookingType.MULTI_DAY:
                continue
            if booking.time_range.overlaps(time_range):
                logger.info("Requested range %s conflicts with booking %s", time_range, booking.id)
                return AdmissionDecision.reject(CapacityReason.SLOT_TAKEN)

        return AdmissionDecision.admit()

    def decide(
        self,
        request: BookingRequest,
        *,
        enforce_walk_cap: bool = True,
        exclude_booking_id: Optional[int] = None,
    ) -> AdmissionDecision:
        """Run the overlap check, then the walk cap. All-or-nothing."""
        if request.booking_type is BookingType.SINGLE:
            decision = self.check_overlap(request.time_range, exclude_booking_id=exclude_booking_id)
            if not decision.admitted:
                return decision

        return self.check_walk_cap(
            request.date,
            service_type=request.service_type,
            enforce_walk_cap=enforce_walk_cap,
            exclude_booking_id=exclude_booking_id,
        )

