"""Google Calendar API wrapper.

Wraps a session's bearer access token into a Calendar API client and
exposes list/create/update/delete operations. This module isolates all
Google-specific code so the request handlers stay clean: every remote
failure leaves here as an UpstreamError or NotFoundError, with the
provider's detail logged but not attached to anything the client sees.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from gcal.backend import DEFAULT_CALENDAR_ID, DEFAULT_MAX_RESULTS, CalendarBackend
from gcal.exceptions import MissingCredentialError, NotFoundError, UpstreamError
from gcal.models import CalendarEvent, CalendarInfo

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"

# Google answers 410 Gone for events that were already deleted
_NOT_FOUND_STATUSES = {404, 410}


def format_api_datetime(dt: datetime) -> str:
    """Format a datetime as RFC 3339; naive values are taken as UTC."""
    return dt.isoformat() + "Z" if dt.tzinfo is None else dt.isoformat()


class GoogleCalendarService(CalendarBackend):
    """Calendar backend bound to one user's OAuth access token."""

    def __init__(
        self,
        access_token: str | None,
        client_id: str = "",
        client_secret: str = "",
        service: Any = None,
    ) -> None:
        """Initialize the service.

        Args:
            access_token: Bearer token from the signed-in session.
            client_id: OAuth client ID (optional, informational for google-auth).
            client_secret: OAuth client secret (optional).
            service: Prebuilt discovery client, mainly for tests.

        Raises:
            MissingCredentialError: If no access token is given.
        """
        if not access_token:
            raise MissingCredentialError()

        self._credentials = Credentials(
            token=access_token,
            token_uri=TOKEN_URI,
            client_id=client_id or None,
            client_secret=client_secret or None,
        )
        self._service = service

    def _get_service(self) -> Any:
        """Get or create the Calendar API discovery client."""
        if self._service is None:
            self._service = build(
                "calendar", "v3", credentials=self._credentials, cache_discovery=False
            )
        return self._service

    def _execute(self, action: str, request: Any, event_id: str | None = None) -> Any:
        """Run an API request, translating failures into calendar errors."""
        try:
            return request.execute()
        except HttpError as e:
            status = e.resp.status
            if event_id is not None and status in _NOT_FOUND_STATUSES:
                logger.warning("Error %s: event %s not found upstream", action, event_id)
                raise NotFoundError(event_id) from e
            logger.error("Error %s (HTTP %s): %s", action, status, e)
            raise UpstreamError(f"Google Calendar API error while {action}", status=status) from e
        except Exception as e:
            logger.error("Error %s: %s", action, e)
            raise UpstreamError(f"Google Calendar request failed while {action}") from e

    # =========================================================================
    # Calendars
    # =========================================================================

    def list_calendars(self) -> list[CalendarInfo]:
        service = self._get_service()
        results = self._execute("fetching calendars", service.calendarList().list())
        return [CalendarInfo.from_api(item) for item in results.get("items", [])]

    # =========================================================================
    # Events
    # =========================================================================

    def list_events(
        self,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        max_results: int = DEFAULT_MAX_RESULTS,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
    ) -> list[CalendarEvent]:
        service = self._get_service()

        if time_min is None:
            time_min = datetime.now(timezone.utc)

        kwargs: dict[str, Any] = {
            "calendarId": calendar_id,
            "maxResults": max_results,
            "singleEvents": True,
            "orderBy": "startTime",
            "timeMin": format_api_datetime(time_min),
        }
        if time_max is not None:
            kwargs["timeMax"] = format_api_datetime(time_max)

        logger.info("Fetching events from calendar '%s' (timeMin=%s)", calendar_id, kwargs["timeMin"])
        results = self._execute("fetching events", service.events().list(**kwargs))

        events = [CalendarEvent.from_api(item) for item in results.get("items", [])]
        logger.info("Retrieved %d events from calendar '%s'", len(events), calendar_id)
        return events

    def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        service = self._get_service()
        request = service.events().insert(calendarId=calendar_id, body=event.to_api())
        result = self._execute("creating event", request)
        logger.info("Created event %s in calendar '%s'", result.get("id"), calendar_id)
        return CalendarEvent.from_api(result)

    def update_event(self, calendar_id: str, event_id: str, event: CalendarEvent) -> CalendarEvent:
        service = self._get_service()
        request = service.events().update(
            calendarId=calendar_id, eventId=event_id, body=event.to_api()
        )
        result = self._execute("updating event", request, event_id=event_id)
        return CalendarEvent.from_api(result)

    def delete_event(self, calendar_id: str, event_id: str) -> bool:
        service = self._get_service()
        request = service.events().delete(calendarId=calendar_id, eventId=event_id)
        self._execute("deleting event", request, event_id=event_id)
        return True
