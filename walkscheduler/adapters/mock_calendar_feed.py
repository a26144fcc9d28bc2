"""
Mock calendar feed for running without Microsoft authentication.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import CalendarEvent

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class MockCalendarFeed:
    """
    Feed that serves events from a JSON file instead of Microsoft Graph.

    Each entry looks like
    {"id": "...", "start": "...", "end": "...", "summary": "...",
     "description": "...", "all_day": false}.
    """

    def __init__(self, data_file: Optional[Path] = None, events: Optional[List[Dict[str, Any]]] = None):
        """
        Initialize the mock feed.

        Args:
            data_file: JSON file with a list of events (defaults to mock_calendar_data.json)
            events: Inline events, used instead of the file when given
        """
        self.data_file = data_file or DEFAULT_DATA_FILE
        if events is not None:
            self.calendar_events = list(events)
        else:
            self.calendar_events = self._load_calendar_data()

    def _load_calendar_data(self) -> List[Dict[str, Any]]:
        """Load mock calendar data from JSON file."""
        if not self.data_file.exists():
            logger.warning("Mock calendar file %s not found, serving an empty calendar", self.data_file)
            return []

        with open(self.data_file, "r", encoding="utf-8") as f:
            return json.load(f)

    def list_events(
        self,
        start_time: DateTime,
        end_time: DateTime,
        timezone: str = "Europe/London"
    ) -> List[CalendarEvent]:
        """
        Return events overlapping the window.

        Entries with unparseable times are passed through untouched so the
        domain layer can drop and log them like real feed anomalies.
        """
        events: List[CalendarEvent] = []

        for raw in self.calendar_events:
            event = CalendarEvent(
                event_id=str(raw.get("id", "")),
                start=raw.get("start"),
                end=raw.get("end"),
                summary=raw.get("summary", ""),
                description=raw.get("description", ""),
                all_day=bool(raw.get("all_day", False)),
            )

            if not event.start or not event.end:
                events.append(event)
                continue

            try:
                event_start = pendulum.parse(raw["start"], tz=timezone)
                event_end = pendulum.parse(raw["end"], tz=timezone)
            except (KeyError, TypeError, ValueError):
                events.append(event)
                continue

            if event_start < end_time and event_end > start_time:
                events.append(event)

        return events

    def test_connection(self) -> Dict[str, str]:
        """
        Mock connection test.

        Returns:
            Mock user profile data
        """
        return {
            "displayName": "Mock Walker",
            "mail": "walker@example.com",
            "userPrincipalName": "walker@example.com"
        }
