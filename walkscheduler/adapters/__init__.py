"""
Adapters layer - External integrations (calendar feed, stores, authentication).
"""

from .calendar_feed import GraphCalendarFeed
from .graph_authenticator import GraphAuthenticator
from .memory_store import InMemoryBookingStore, InMemoryWalkLimitOverrideStore, JsonDataFile
from .mock_calendar_feed import MockCalendarFeed

__all__ = [
    "GraphCalendarFeed",
    "GraphAuthenticator",
    "InMemoryBookingStore",
    "InMemoryWalkLimitOverrideStore",
    "JsonDataFile",
    "MockCalendarFeed",
]
