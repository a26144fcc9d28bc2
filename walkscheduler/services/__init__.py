"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .admission import AdmissionController, BookingStoreProtocol, WalkLimitOverrideStoreProtocol
from .availability import AvailabilityService, CalendarFeedProtocol
from .booking import BookingResult, BookingService, RecurringCheckResult, RecurringRequest

__all__ = [
    "AdmissionController",
    "AvailabilityService",
    "BookingResult",
    "BookingService",
    "BookingStoreProtocol",
    "CalendarFeedProtocol",
    "RecurringCheckResult",
    "RecurringRequest",
    "WalkLimitOverrideStoreProtocol",
]
