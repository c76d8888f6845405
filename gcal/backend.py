"""
Abstract calendar backend.

Everything above this seam (request handlers, the page view) talks to a
CalendarBackend, so the Google-backed adapter can be swapped for the
in-memory one in tests and local development.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from gcal.models import CalendarEvent, CalendarInfo

DEFAULT_CALENDAR_ID = "primary"
DEFAULT_MAX_RESULTS = 50


class CalendarBackend(ABC):
    """Read/create/update/delete access to one user's calendars."""

    @abstractmethod
    def list_calendars(self) -> list[CalendarInfo]:
        """
        List the user's calendars.

        Raises:
            UpstreamError: If the backend call fails.
        """

    @abstractmethod
    def list_events(
        self,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        max_results: int = DEFAULT_MAX_RESULTS,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
    ) -> list[CalendarEvent]:
        """
        List single-occurrence events ordered by start time.

        Args:
            calendar_id: Calendar ID or "primary".
            max_results: Page size.
            time_min: Lower bound on event end (defaults to now).
            time_max: Upper bound on event start.

        Raises:
            UpstreamError: If the backend call fails.
        """

    @abstractmethod
    def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        """
        Create an event and return it with its assigned id.

        Raises:
            UpstreamError: If the backend rejects the event.
        """

    @abstractmethod
    def update_event(self, calendar_id: str, event_id: str, event: CalendarEvent) -> CalendarEvent:
        """
        Replace an existing event.

        Raises:
            NotFoundError: If event_id is unknown.
            UpstreamError: For any other failure.
        """

    @abstractmethod
    def delete_event(self, calendar_id: str, event_id: str) -> bool:
        """
        Delete an event.

        Raises:
            NotFoundError: If event_id is unknown.
            UpstreamError: For any other failure.
        """
