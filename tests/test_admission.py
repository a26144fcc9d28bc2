"""
Tests for the admission controller: overlap rules and the sitting walk cap.
"""

import pendulum
import pytest

from walkscheduler.adapters.memory_store import InMemoryBookingStore, InMemoryWalkLimitOverrideStore
from walkscheduler.domain.exceptions import StoreError
from walkscheduler.domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    BookingType,
    CapacityReason,
    ServiceType,
    SittingState,
    TimeRange,
)
from walkscheduler.services.admission import AdmissionController

MONDAY = pendulum.date(2025, 3, 10)


def _walk(booking_id, start, minutes=60, service_type=ServiceType.SOLO, status=BookingStatus.CONFIRMED):
    begin = pendulum.parse(start, tz="Europe/London")
    return Booking(
        id=booking_id,
        start=begin,
        end=begin.add(minutes=minutes),
        service_type=service_type,
        status=status,
    )


def _sitting(booking_id, start="2025-03-09 08:00", end="2025-03-13 18:00", status=BookingStatus.CONFIRMED):
    return Booking(
        id=booking_id,
        start=pendulum.parse(start, tz="Europe/London"),
        end=pendulum.parse(end, tz="Europe/London"),
        service_type=ServiceType.SITTING,
        booking_type=BookingType.MULTI_DAY,
        status=status,
    )


def _request(start, minutes=60, service_type=ServiceType.SOLO):
    begin = pendulum.parse(start, tz="Europe/London")
    return BookingRequest(start=begin, end=begin.add(minutes=minutes), service_type=service_type)


def _controller(bookings=(), overrides=None, cap=4):
    store = InMemoryBookingStore(bookings, timezone="Europe/London")
    override_store = InMemoryWalkLimitOverrideStore()
    for day, max_walks in (overrides or {}).items():
        override_store.upsert(day, max_walks)
    return AdmissionController(store, override_store, default_walk_cap=cap, timezone="Europe/London"), store


FOUR_WALKS = [
    _walk(2, "2025-03-10 09:00"),
    _walk(3, "2025-03-10 10:30"),
    _walk(4, "2025-03-10 12:00", service_type=ServiceType.QUICK, minutes=30),
    _walk(5, "2025-03-10 14:00"),
]


class TestWalkLimitStatus:
    """Tests for the three walk-cap states of a date."""

    def test_no_sitting_means_no_cap(self):
        controller, _ = _controller(FOUR_WALKS)

        status = controller.walk_limit_status(MONDAY)

        assert status.state is SittingState.NO_SITTING
        assert status.walk_limit is None
        assert not status.limit_reached

    def test_default_cap_during_sitting(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS[:2])

        status = controller.walk_limit_status(MONDAY)

        assert status.state is SittingState.CAPPED
        assert status.walk_limit == 4
        assert status.current_walk_count == 2

    def test_numeric_override_replaces_default(self):
        controller, _ = _controller([_sitting(1)], overrides={MONDAY: 2})

        assert controller.walk_limit_status(MONDAY).walk_limit == 2

    def test_unlimited_override(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS, overrides={MONDAY: None})

        status = controller.walk_limit_status(MONDAY)

        assert status.state is SittingState.UNLIMITED
        assert not status.limit_reached

    def test_override_without_sitting_has_no_effect(self):
        controller, _ = _controller(FOUR_WALKS, overrides={MONDAY: 0})

        assert controller.walk_limit_status(MONDAY).state is SittingState.NO_SITTING

    def test_sitting_counts_on_its_first_and_last_day(self):
        controller, _ = _controller([_sitting(1, "2025-03-10 18:00", "2025-03-12 08:00")])

        assert controller.walk_limit_status(pendulum.date(2025, 3, 10)).has_active_sitting
        assert controller.walk_limit_status(pendulum.date(2025, 3, 12)).has_active_sitting
        assert not controller.walk_limit_status(pendulum.date(2025, 3, 13)).has_active_sitting

    def test_cancelled_sitting_is_ignored(self):
        controller, _ = _controller([_sitting(1, status=BookingStatus.CANCELLED)])

        assert controller.walk_limit_status(MONDAY).state is SittingState.NO_SITTING


class TestCountWalks:
    """Only confirmed solo and quick walks starting that day are counted."""

    def test_only_capped_confirmed_walks_count(self):
        controller, _ = _controller([
            _sitting(1),
            _walk(2, "2025-03-10 09:00"),
            _walk(3, "2025-03-10 10:00", service_type=ServiceType.MEET_GREET),
            _walk(4, "2025-03-10 11:00", status=BookingStatus.CANCELLED),
            _walk(5, "2025-03-10 12:00", status=BookingStatus.COMPLETED),
            _walk(6, "2025-03-11 09:00"),
            _walk(7, "2025-03-10 15:00", service_type=ServiceType.QUICK),
        ])

        assert controller.count_walks(MONDAY) == 2

    def test_exclude_booking_id(self):
        controller, _ = _controller(FOUR_WALKS)

        assert controller.count_walks(MONDAY, exclude_booking_id=3) == 3


class TestCheckWalkCap:
    """Tests for walk cap enforcement."""

    def test_fifth_walk_rejected_at_cap(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS)

        decision = controller.check_walk_cap(MONDAY, service_type=ServiceType.SOLO)

        assert not decision.admitted
        assert decision.reason is CapacityReason.WALK_LIMIT_REACHED
        assert "fully booked for walks" in decision.message

    def test_below_cap_admitted(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS[:3])

        assert controller.check_walk_cap(MONDAY).admitted

    def test_meet_and_greet_is_never_capped(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS)

        assert controller.check_walk_cap(MONDAY, service_type=ServiceType.MEET_GREET).admitted

    def test_admin_bypass(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS)

        assert controller.check_walk_cap(MONDAY, enforce_walk_cap=False).admitted

    def test_zero_override_blocks_all_walks(self):
        controller, _ = _controller([_sitting(1)], overrides={MONDAY: 0})

        assert not controller.check_walk_cap(MONDAY).admitted

    def test_raising_cap_never_turns_admission_into_rejection(self):
        """Cap monotonicity: a higher cap admits everything a lower one did."""
        bookings = [_sitting(1)] + FOUR_WALKS[:2]
        admitted_by_cap = []
        for cap in range(0, 6):
            controller, _ = _controller(bookings, cap=cap)
            admitted_by_cap.append(controller.check_walk_cap(MONDAY).admitted)

        assert admitted_by_cap == [False, False, False, True, True, True]

    def test_negative_default_cap_rejected(self):
        with pytest.raises(ValueError):
            _controller(cap=-1)


class TestCheckOverlap:
    """Tests for double-booking prevention."""

    def test_overlapping_single_booking_rejected(self):
        controller, _ = _controller([_walk(2, "2025-03-10 10:00")])

        decision = controller.check_overlap(_request("2025-03-10 10:30").time_range)

        assert decision.reason is CapacityReason.SLOT_TAKEN

    def test_touching_booking_admitted(self):
        controller, _ = _controller([_walk(2, "2025-03-10 10:00")])

        assert controller.check_overlap(_request("2025-03-10 11:00").time_range).admitted

    def test_multi_day_sitting_never_overlaps(self):
        controller, _ = _controller([_sitting(1)])

        assert controller.check_overlap(_request("2025-03-10 10:00").time_range).admitted

    def test_cancelled_booking_frees_slot(self):
        controller, _ = _controller([_walk(2, "2025-03-10 10:00", status=BookingStatus.CANCELLED)])

        assert controller.check_overlap(_request("2025-03-10 10:00").time_range).admitted

    def test_booking_is_excluded_from_its_own_reschedule(self):
        controller, _ = _controller([_walk(2, "2025-03-10 10:00")])
        moved = TimeRange(
            start=pendulum.parse("2025-03-10 10:30", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 11:30", tz="Europe/London"),
        )

        assert controller.check_overlap(moved, exclude_booking_id=2).admitted


class TestDecide:
    """Tests for the combined admission decision."""

    def test_overlap_is_checked_before_cap(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS)

        decision = controller.decide(_request("2025-03-10 09:30"))

        assert decision.reason is CapacityReason.SLOT_TAKEN

    def test_admin_still_cannot_double_book(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS)

        decision = controller.decide(_request("2025-03-10 09:30"), enforce_walk_cap=False)

        assert decision.reason is CapacityReason.SLOT_TAKEN

    def test_admin_books_past_cap(self):
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS)

        assert controller.decide(_request("2025-03-10 16:00"), enforce_walk_cap=False).admitted

    def test_reschedule_within_full_day_admitted(self):
        """A walk moved on a full day does not count against itself."""
        controller, _ = _controller([_sitting(1)] + FOUR_WALKS)

        decision = controller.decide(_request("2025-03-10 16:00"), exclude_booking_id=5)

        assert decision.admitted

    def test_multi_day_request_skips_overlap(self):
        controller, _ = _controller([_walk(2, "2025-03-10 10:00")])
        begin = pendulum.parse("2025-03-10 08:00", tz="Europe/London")
        request = BookingRequest(
            start=begin,
            end=begin.add(days=2),
            service_type=ServiceType.SITTING,
            booking_type=BookingType.MULTI_DAY,
        )

        assert controller.decide(request).admitted


class FailingBookingStore(InMemoryBookingStore):
    """Booking store whose reads fail, as during a database outage."""

    def list_active_sittings(self, day):
        raise StoreError("database unavailable")


class TestFailClosed:
    """Store failures must surface instead of admitting the booking."""

    def test_store_error_propagates(self):
        controller = AdmissionController(
            FailingBookingStore(timezone="Europe/London"),
            InMemoryWalkLimitOverrideStore(),
        )

        with pytest.raises(StoreError):
            controller.decide(_request("2025-03-10 16:00"))

    def test_admin_path_does_not_touch_the_cap_store(self):
        controller = AdmissionController(
            FailingBookingStore(timezone="Europe/London"),
            InMemoryWalkLimitOverrideStore(),
        )

        assert controller.decide(_request("2025-03-10 16:00"), enforce_walk_cap=False).admitted
