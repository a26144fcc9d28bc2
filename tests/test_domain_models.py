"""
Tests for domain models.
"""

import pendulum
import pytest
from datetime import time

from walkscheduler.domain.exceptions import InvalidTimeRangeError, ValidationError
from walkscheduler.domain.models import (
    AdmissionDecision,
    Booking,
    BookingStatus,
    BookingType,
    CapacityReason,
    REJECTION_MESSAGES,
    ServiceType,
    SittingState,
    TimeRange,
    WalkLimitOverride,
    WalkLimitStatus,
    WorkingHours,
)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2025-03-10 09:00", tz="Europe/London")
        end = pendulum.parse("2025-03-10 20:00", tz="Europe/London")

        tr = TimeRange(start=start, end=end)

        assert tr.start == start
        assert tr.end == end
        assert tr.duration_minutes() == 660

    def test_zero_length_range_is_allowed(self):
        """A range may start and end at the same instant."""
        instant = pendulum.parse("2025-03-10 12:00", tz="Europe/London")

        assert TimeRange(start=instant, end=instant).duration_minutes() == 0

    def test_invalid_time_range_raises_error(self):
        """Test that a range ending before it starts is rejected."""
        start = pendulum.parse("2025-03-10 17:00", tz="Europe/London")
        end = pendulum.parse("2025-03-10 09:00", tz="Europe/London")

        with pytest.raises(InvalidTimeRangeError, match="must not be after end time"):
            TimeRange(start=start, end=end)

        # Still catchable as a plain ValueError
        with pytest.raises(ValueError):
            TimeRange(start=start, end=end)

    def test_overlaps(self):
        """Test overlap detection, with touching ranges not overlapping."""
        tr1 = TimeRange(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 12:00", tz="Europe/London")
        )
        tr2 = TimeRange(
            start=pendulum.parse("2025-03-10 11:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 14:00", tz="Europe/London")
        )
        tr3 = TimeRange(
            start=pendulum.parse("2025-03-10 14:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 17:00", tz="Europe/London")
        )

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)
        assert not tr2.overlaps(tr3)

    def test_contains(self):
        outer = TimeRange(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 12:00", tz="Europe/London")
        )
        inner = TimeRange(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 10:00", tz="Europe/London")
        )
        spill = TimeRange(
            start=pendulum.parse("2025-03-10 11:30", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 12:30", tz="Europe/London")
        )

        assert outer.contains(inner)
        assert not outer.contains(spill)

    def test_format_display(self):
        tr = TimeRange(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 11:45", tz="Europe/London")
        )

        assert tr.format_display() == {"start": "09:00", "end": "11:45"}


class TestWorkingHours:
    """Tests for WorkingHours model."""

    def test_is_working_day(self):
        """Test working day detection."""
        working_hours = WorkingHours(
            start_time=time(9, 0),
            end_time=time(20, 0),
            exclude_weekdays=[5, 6]  # Saturday, Sunday
        )

        assert working_hours.is_working_day(pendulum.date(2025, 3, 10))  # Monday
        assert not working_hours.is_working_day(pendulum.date(2025, 3, 15))  # Saturday
        assert not working_hours.is_working_day(pendulum.date(2025, 3, 16))  # Sunday

    def test_envelope_for_day(self):
        """The envelope is built in the business timezone."""
        working_hours = WorkingHours(
            start_time=time(9, 0),
            end_time=time(20, 0),
            exclude_weekdays=[5, 6],
            timezone="Europe/London",
        )

        envelope = working_hours.envelope_for(pendulum.date(2025, 3, 10))

        assert envelope.start == pendulum.parse("2025-03-10 09:00", tz="Europe/London")
        assert envelope.end == pendulum.parse("2025-03-10 20:00", tz="Europe/London")
        assert envelope.as_range().duration_minutes() == 660

    def test_envelope_follows_daylight_saving(self):
        """After the clocks go forward 09:00 local is 08:00 UTC."""
        working_hours = WorkingHours(
            start_time=time(9, 0),
            end_time=time(20, 0),
            exclude_weekdays=[],
            timezone="Europe/London",
        )

        envelope = working_hours.envelope_for(pendulum.date(2025, 3, 31))

        assert envelope.start.in_timezone("UTC").hour == 8


class TestBooking:
    """Tests for the Booking projection."""

    def test_spans_is_inclusive_by_date(self):
        sitting = Booking(
            id=1,
            start=pendulum.parse("2025-03-10 08:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-12 18:00", tz="Europe/London"),
            service_type=ServiceType.SITTING,
            booking_type=BookingType.MULTI_DAY,
        )

        assert sitting.spans(pendulum.date(2025, 3, 10))
        assert sitting.spans(pendulum.date(2025, 3, 12))
        assert not sitting.spans(pendulum.date(2025, 3, 13))

    def test_only_confirmed_status_is_confirmed(self):
        start = pendulum.parse("2025-03-10 09:00", tz="Europe/London")
        for status in BookingStatus:
            booking = Booking(
                id=1, start=start, end=start.add(hours=1),
                service_type=ServiceType.SOLO, status=status,
            )
            assert booking.is_confirmed is (status is BookingStatus.CONFIRMED)

    def test_service_classification(self):
        """Only solo and quick walks count toward the cap."""
        assert ServiceType.SOLO.is_capped
        assert ServiceType.QUICK.is_capped
        assert not ServiceType.MEET_GREET.is_capped
        assert ServiceType.MEET_GREET.is_walk
        assert not ServiceType.SITTING.is_walk


class TestWalkLimit:
    """Tests for walk limit state and admission decisions."""

    def test_override_none_means_unlimited(self):
        assert WalkLimitOverride(date=pendulum.date(2025, 3, 10)).is_unlimited
        assert not WalkLimitOverride(date=pendulum.date(2025, 3, 10), max_walks=0).is_unlimited

    def test_negative_override_rejected(self):
        with pytest.raises(ValidationError, match="non-negative"):
            WalkLimitOverride(date=pendulum.date(2025, 3, 10), max_walks=-1)

    def test_limit_reached_only_when_capped(self):
        assert WalkLimitStatus(state=SittingState.CAPPED, walk_limit=4, current_walk_count=4).limit_reached
        assert not WalkLimitStatus(state=SittingState.CAPPED, walk_limit=4, current_walk_count=3).limit_reached
        assert not WalkLimitStatus(state=SittingState.UNLIMITED, current_walk_count=40).limit_reached
        assert not WalkLimitStatus(state=SittingState.NO_SITTING).has_active_sitting

    def test_reject_uses_default_message(self):
        decision = AdmissionDecision.reject(CapacityReason.WALK_LIMIT_REACHED)

        assert not decision.admitted
        assert decision.reason is CapacityReason.WALK_LIMIT_REACHED
        assert decision.message == REJECTION_MESSAGES[CapacityReason.WALK_LIMIT_REACHED]
        assert AdmissionDecision.admit().admitted
