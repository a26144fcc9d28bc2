"""
In-memory booking and walk-limit override stores, with JSON file persistence.

These back the CLI and the test suite. A production deployment would put
the same protocol in front of its relational store and implement
``transaction(day)`` with a serializable transaction or a row lock on the
date.
"""

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

from ..domain.exceptions import BookingNotFoundError, StoreError
from ..domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    BookingType,
    ServiceType,
    WalkLimitOverride,
)

logger = logging.getLogger(__name__)


class InMemoryBookingStore:
    """
    Thread-safe booking store.

    ``transaction(day)`` holds a re-entrant lock per date, so an admission
    check followed by an insert for the same date runs as one unit.
    """

    def __init__(self, bookings: Iterable[Booking] = (), timezone: str = "Europe/London"):
        self.timezone = timezone
        self._guard = threading.Lock()
        self._date_locks: Dict[Date, threading.RLock] = {}
        self._bookings: Dict[int, Booking] = {}
        for booking in bookings:
            self._bookings[booking.id] = booking
        self._next_id = max(self._bookings, default=0) + 1

    @contextmanager
    def transaction(self, day: Date) -> Iterator["InMemoryBookingStore"]:
        with self._guard:
            lock = self._date_locks.setdefault(day, threading.RLock())
        with lock:
            yield self

    def get(self, booking_id: int) -> Booking:
        with self._guard:
            booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    def add(self, request: BookingRequest) -> Booking:
        with self._guard:
            booking = Booking(
                id=self._next_id,
                start=request.start,
                end=request.end,
                service_type=request.service_type,
                booking_type=request.booking_type,
                owner_id=request.owner_id,
                series_id=request.series_id,
                series_index=request.series_index,
            )
            self._bookings[booking.id] = booking
            self._next_id += 1
        logger.debug("Stored booking %s (%s, %s)", booking.id, booking.service_type.value, booking.time_range)
        return booking

    def update(self, booking: Booking) -> Booking:
        with self._guard:
            if booking.id not in self._bookings:
                raise BookingNotFoundError(f"Booking {booking.id} not found")
            self._bookings[booking.id] = booking
        return booking

    def all(self) -> List[Booking]:
        with self._guard:
            return sorted(self._bookings.values(), key=lambda b: (b.start, b.id))

    def list_confirmed_overlapping(self, start: DateTime, end: DateTime) -> List[Booking]:
        return [
            b for b in self.all()
            if b.is_confirmed and b.start < end and b.end > start
        ]

    def list_active_sittings(self, day: Date) -> List[Booking]:
        return [
            b for b in self.all()
            if b.is_confirmed
            and b.booking_type is BookingType.MULTI_DAY
            and self._local_date(b.start) <= day <= self._local_date(b.end)
        ]

    def _local_date(self, dt: DateTime) -> Date:
        return dt.in_timezone(self.timezone).date()


class InMemoryWalkLimitOverrideStore:
    """Per-date walk cap overrides, unique per date."""

    def __init__(self, overrides: Iterable[WalkLimitOverride] = ()):
        self._guard = threading.Lock()
        self._overrides: Dict[Date, WalkLimitOverride] = {o.date: o for o in overrides}

    def get(self, day: Date) -> Optional[WalkLimitOverride]:
        with self._guard:
            return self._overrides.get(day)

    def all(self) -> List[WalkLimitOverride]:
        with self._guard:
            return sorted(self._overrides.values(), key=lambda o: o.date)

    def list_range(self, start: Date, end: Date) -> List[WalkLimitOverride]:
        with self._guard:
            return sorted(
                (o for o in self._overrides.values() if start <= o.date <= end),
                key=lambda o: o.date,
            )

    def upsert(self, day: Date, max_walks: Optional[int]) -> WalkLimitOverride:
        override = WalkLimitOverride(date=day, max_walks=max_walks)
        with self._guard:
            self._overrides[day] = override
        logger.info("Walk limit override for %s set to %s", day, "unlimited" if max_walks is None else max_walks)
        return override

    def delete(self, day: Date) -> bool:
        with self._guard:
            removed = self._overrides.pop(day, None)
        if removed is not None:
            logger.info("Walk limit override for %s removed, default limit restored", day)
        return removed is not None


def booking_to_dict(booking: Booking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "start": booking.start.to_iso8601_string(),
        "end": booking.end.to_iso8601_string(),
        "service_type": booking.service_type.value,
        "status": booking.status.value,
        "booking_type": booking.booking_type.value,
        "owner_id": booking.owner_id,
        "series_id": booking.series_id,
        "series_index": booking.series_index,
        "calendar_event_id": booking.calendar_event_id,
    }


def booking_from_dict(data: Dict[str, Any], timezone: str) -> Booking:
    return Booking(
        id=int(data["id"]),
        start=pendulum.parse(data["start"], tz=timezone).in_timezone(timezone),
        end=pendulum.parse(data["end"], tz=timezone).in_timezone(timezone),
        service_type=ServiceType(data["service_type"]),
        status=BookingStatus(data.get("status", BookingStatus.CONFIRMED.value)),
        booking_type=BookingType(data.get("booking_type", BookingType.SINGLE.value)),
        owner_id=data.get("owner_id"),
        series_id=data.get("series_id"),
        series_index=data.get("series_index"),
        calendar_event_id=data.get("calendar_event_id"),
    )


class JsonDataFile:
    """
    Loads and saves both stores from one JSON document.

    Format:
    {
        "bookings": [{"id": 1, "start": "...", "end": "...", "service_type": "solo", ...}],
        "walk_limit_overrides": [{"date": "2025-03-10", "max_walks": null}]
    }
    """

    def __init__(self, path: Path, timezone: str = "Europe/London"):
        self.path = path
        self.timezone = timezone

    def load(self) -> Tuple[InMemoryBookingStore, InMemoryWalkLimitOverrideStore]:
        if not self.path.exists():
            logger.info("Data file %s not found, starting with empty stores", self.path)
            return InMemoryBookingStore(timezone=self.timezone), InMemoryWalkLimitOverrideStore()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f) or {}
            bookings = [booking_from_dict(item, self.timezone) for item in data.get("bookings", [])]
            overrides = [
                WalkLimitOverride(
                    date=pendulum.parse(item["date"]).date(),
                    max_walks=item.get("max_walks"),
                )
                for item in data.get("walk_limit_overrides", [])
            ]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"Could not load booking data from {self.path}: {exc}") from exc

        return (
            InMemoryBookingStore(bookings, timezone=self.timezone),
            InMemoryWalkLimitOverrideStore(overrides),
        )

    def save(
        self,
        booking_store: InMemoryBookingStore,
        override_store: InMemoryWalkLimitOverrideStore,
    ) -> None:
        data = {
            "bookings": [booking_to_dict(b) for b in booking_store.all()],
            "walk_limit_overrides": [
                {"date": o.date.isoformat(), "max_walks": o.max_walks}
                for o in override_store.all()
            ],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as exc:
            raise StoreError(f"Could not save booking data to {self.path}: {exc}") from exc
