"""
Shared fixtures for the walkscheduler test suite.
"""

from datetime import time

import pytest

from walkscheduler.adapters.memory_store import InMemoryBookingStore, InMemoryWalkLimitOverrideStore
from walkscheduler.domain.models import WorkingHours
from walkscheduler.services.admission import AdmissionController


@pytest.fixture
def working_hours() -> WorkingHours:
    return WorkingHours(
        start_time=time(9, 0),
        end_time=time(20, 0),
        exclude_weekdays=[5, 6],
        timezone="Europe/London",
    )


@pytest.fixture
def booking_store() -> InMemoryBookingStore:
    return InMemoryBookingStore(timezone="Europe/London")


@pytest.fixture
def override_store() -> InMemoryWalkLimitOverrideStore:
    return InMemoryWalkLimitOverrideStore()


@pytest.fixture
def admission(booking_store, override_store) -> AdmissionController:
    return AdmissionController(booking_store, override_store, default_walk_cap=4, timezone="Europe/London")
