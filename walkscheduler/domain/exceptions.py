"""
Domain-specific exception hierarchy for the walk scheduler.

Capacity rejections are not exceptions: they are returned as
``AdmissionDecision`` values so callers can explain them to customers.
"""


class SchedulerError(Exception):
    """Base class for all application-level errors."""


class InvalidTimeRangeError(SchedulerError, ValueError):
    """Raised when a time range would end before it starts."""


class ValidationError(SchedulerError, ValueError):
    """Raised when caller-supplied booking or override data is invalid."""


class StoreError(SchedulerError):
    """Raised when the booking or override store cannot be read or written."""


class BookingNotFoundError(StoreError):
    """Raised when a booking id does not exist or is not in a usable state."""


class CalendarAPIError(SchedulerError):
    """Raised when calendar data cannot be fetched or parsed."""


class AuthenticationError(SchedulerError):
    """Raised when authentication or token handling fails."""
