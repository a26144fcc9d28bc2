"""
Tests for recurring date generation and alternative start times.
"""

import pendulum
import pytest

from walkscheduler.domain.exceptions import ValidationError
from walkscheduler.domain.models import TimeRange
from walkscheduler.domain.recurrence import (
    MAX_WEEKS_AHEAD,
    RecurrencePattern,
    find_alternative_times,
    generate_target_dates,
)

START = pendulum.date(2025, 3, 10)  # Monday


class TestGenerateTargetDates:
    """Tests for generate_target_dates."""

    def test_weekly(self):
        dates = generate_target_dates(START, 3, RecurrencePattern.WEEKLY)

        assert [d.isoformat() for d in dates] == ["2025-03-10", "2025-03-17", "2025-03-24"]

    def test_biweekly(self):
        dates = generate_target_dates(START, 4, RecurrencePattern.BIWEEKLY)

        assert [d.isoformat() for d in dates] == ["2025-03-10", "2025-03-24"]

    def test_custom_days(self):
        """Custom patterns use ISO weekdays, 1=Monday."""
        dates = generate_target_dates(START, 2, RecurrencePattern.CUSTOM, days_of_week=[2, 4])

        assert [d.isoformat() for d in dates] == ["2025-03-11", "2025-03-13", "2025-03-18", "2025-03-20"]

    def test_weeks_are_capped(self):
        dates = generate_target_dates(START, 52, RecurrencePattern.WEEKLY)

        assert len(dates) == MAX_WEEKS_AHEAD

    def test_invalid_weeks(self):
        with pytest.raises(ValidationError):
            generate_target_dates(START, 0, RecurrencePattern.WEEKLY)

    def test_invalid_weekday(self):
        with pytest.raises(ValidationError, match="between 1 and 7"):
            generate_target_dates(START, 1, RecurrencePattern.CUSTOM, days_of_week=[0])


class TestFindAlternativeTimes:
    """Tests for find_alternative_times."""

    def test_ordered_by_distance_from_preferred_hour(self):
        windows = [
            TimeRange(
                start=pendulum.parse("2025-03-10 09:00", tz="Europe/London"),
                end=pendulum.parse("2025-03-10 10:30", tz="Europe/London"),
            ),
            TimeRange(
                start=pendulum.parse("2025-03-10 13:00", tz="Europe/London"),
                end=pendulum.parse("2025-03-10 14:00", tz="Europe/London"),
            ),
        ]

        times = find_alternative_times(windows, 60, preferred_hour=12)

        assert [t.format("HH:mm") for t in times] == ["13:00", "09:00", "09:30"]

    def test_no_window_long_enough(self):
        window = TimeRange(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/London"),
            end=pendulum.parse("2025-03-10 09:45", tz="Europe/London"),
        )

        assert find_alternative_times([window], 60, preferred_hour=9) == []
