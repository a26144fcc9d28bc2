"""
Microsoft Graph client for reading the business calendar as a busy-event feed.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import CalendarEvent

logger = logging.getLogger(__name__)


class GraphCalendarFeed:
    """
    Read-only calendar feed backed by the Microsoft Graph calendarView endpoint.

    Returns raw events; start/end validation happens in the domain layer so a
    single malformed entry never blocks a whole day.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    def __init__(self, access_token: str, calendar_id: Optional[str] = None, timeout: int = 30):
        """
        Initialize the feed.

        Args:
            access_token: Valid Microsoft Graph access token
            calendar_id: Calendar to read; the signed-in user's default calendar when omitted
            timeout: Request timeout in seconds
        """
        self.access_token = access_token
        self.calendar_id = calendar_id
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json"
        }

    def _calendar_view_url(self) -> str:
        if self.calendar_id:
            return f"{self.GRAPH_API_ENDPOINT}/me/calendars/{self.calendar_id}/calendarView"
        return f"{self.GRAPH_API_ENDPOINT}/me/calendarView"

    def list_events(
        self,
        start_time: DateTime,
        end_time: DateTime,
        timezone: str = "Europe/London"
    ) -> List[CalendarEvent]:
        """
        Get all events overlapping the window, following pagination links.

        Args:
            start_time: Start of the time window
            end_time: End of the time window
            timezone: IANA timezone identifier the event times are returned in

        Returns:
            List of raw CalendarEvent objects

        Raises:
            CalendarAPIError: If the API call fails
        """
        url: Optional[str] = self._calendar_view_url()
        params: Optional[Dict[str, Any]] = {
            "startDateTime": start_time.to_iso8601_string(),
            "endDateTime": end_time.to_iso8601_string(),
            "$orderby": "start/dateTime",
            "$select": "id,subject,bodyPreview,isAllDay,start,end,showAs",
        }
        headers = dict(self.headers)
        headers["Prefer"] = f'outlook.timezone="{timezone}"'

        events: List[CalendarEvent] = []

        while url:
            try:
                response = requests.get(url, headers=headers, params=params, timeout=self.timeout)
                response.raise_for_status()
                data = response.json()
            except requests.exceptions.RequestException as e:
                raise CalendarAPIError(f"Failed to fetch calendar events from Microsoft Graph: {e}") from e
            except ValueError as e:
                raise CalendarAPIError(f"Microsoft Graph returned invalid JSON: {e}") from e

            events.extend(self._parse_events(data))

            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None

        logger.debug("Fetched %d calendar events between %s and %s", len(events), start_time, end_time)
        return events

    def _parse_events(self, response_data: Dict[str, Any]) -> List[CalendarEvent]:
        """
        Parse a calendarView page into raw events.

        Response format:
        {
            "value": [
                {
                    "id": "AAMk...",
                    "subject": "Solo Walk - Rex",
                    "bodyPreview": "Duration: 60 minutes",
                    "isAllDay": false,
                    "showAs": "busy",
                    "start": {"dateTime": "...", "timeZone": "..."},
                    "end": {"dateTime": "...", "timeZone": "..."}
                }
            ],
            "@odata.nextLink": "..."
        }
        """
        events: List[CalendarEvent] = []

        for item in response_data.get("value", []):
            # Free entries never block availability
            if item.get("showAs", "busy").lower() == "free":
                continue

            events.append(
                CalendarEvent(
                    event_id=item.get("id", ""),
                    start=(item.get("start") or {}).get("dateTime"),
                    end=(item.get("end") or {}).get("dateTime"),
                    summary=item.get("subject") or "",
                    description=item.get("bodyPreview") or "",
                    all_day=bool(item.get("isAllDay", False)),
                )
            )

        return events

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching user profile.

        Returns:
            User profile data

        Raises:
            CalendarAPIError: If connection test fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me"

        try:
            response = requests.get(url, headers=self.headers, timeout=10)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Connection test failed: {e}") from e
