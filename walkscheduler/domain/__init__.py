"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    AdmissionDecision,
    Booking,
    BookingRequest,
    BookingStatus,
    BookingType,
    CalendarEvent,
    CapacityReason,
    ServiceType,
    SittingState,
    TimeRange,
    WalkLimitOverride,
    WalkLimitStatus,
    WorkdayEnvelope,
    WorkingHours,
)
from .interval_algebra import compute_availability, invert, merge_overlapping, pad_event

__all__ = [
    "AdmissionDecision",
    "Booking",
    "BookingRequest",
    "BookingStatus",
    "BookingType",
    "CalendarEvent",
    "CapacityReason",
    "ServiceType",
    "SittingState",
    "TimeRange",
    "WalkLimitOverride",
    "WalkLimitStatus",
    "WorkdayEnvelope",
    "WorkingHours",
    "compute_availability",
    "invert",
    "merge_overlapping",
    "pad_event",
]
