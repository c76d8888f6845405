"""Calendar API request handlers.

Framework-free handlers behind /api/calendar/*. Each takes the caller's
session explicitly plus a factory that turns a session into a calendar
backend, and returns a (payload, status) pair for the route to serialize.

Failure policy:
- no access token in the session -> 401, no backend is built
- malformed event body or month -> 400 with the list of problems
- unknown event on update/delete -> 404
- any other backend failure -> 500 with a generic message; the upstream
  detail is logged here and never returned
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any

from gcal.backend import DEFAULT_CALENDAR_ID, CalendarBackend
from gcal.exceptions import CalendarError, NotFoundError, Unauthorized, ValidationError
from gcal.models import CalendarEvent, validate_event_body
from gcal.session import Session
from grid.renderer import SUNDAY, grid_range

logger = logging.getLogger(__name__)

BackendFactory = Callable[[Session], CalendarBackend]

# Month-scoped fetches cover 42 days, so they get a larger page than the
# default upcoming-events listing.
GRID_MAX_RESULTS = 250

Response = tuple[dict[str, Any], int]


def _unauthorized() -> Response:
    return {"error": "Unauthorized"}, 401


def _invalid(message: str, details: list[str]) -> Response:
    return {"error": message, "details": details}, 400


def require_access_token(session: Session | None) -> Session:
    """Return the session if it carries an access token.

    Raises:
        Unauthorized: If there is no session or no token.
    """
    if session is None or not session.has_access_token:
        raise Unauthorized("Unauthorized")
    return session


def parse_month(value: str) -> date:
    """Parse a YYYY-MM string into the first day of that month.

    Raises:
        ValidationError: If the string is not a valid month.
    """
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except (TypeError, ValueError):
        raise ValidationError([f"Expected month in YYYY-MM format, got: {value!r}"])


def month_window(month: date, week_start: int = SUNDAY, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
    """Time range covering every cell of a month's grid."""
    first, last = grid_range(month, week_start)
    zone = tz or timezone.utc
    return (
        datetime.combine(first, time.min, tzinfo=zone),
        datetime.combine(last + timedelta(days=1), time.min, tzinfo=zone),
    )


def fetch_month_events(
    backend_factory: BackendFactory,
    week_start: int = SUNDAY,
    tz: tzinfo | None = None,
) -> Callable[[Session, date], list[CalendarEvent]]:
    """Build the fetch callable a CalendarView uses to load a month."""

    def fetch(session: Session, month: date) -> list[CalendarEvent]:
        time_min, time_max = month_window(month, week_start, tz)
        backend = backend_factory(require_access_token(session))
        return backend.list_events(
            DEFAULT_CALENDAR_ID,
            max_results=GRID_MAX_RESULTS,
            time_min=time_min,
            time_max=time_max,
        )

    return fetch


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def list_events(
    session: Session | None,
    backend_factory: BackendFactory,
    month: str | None = None,
    week_start: int = SUNDAY,
    tz: tzinfo | None = None,
) -> Response:
    """GET /api/calendar/events.

    Without a month the backend defaults apply (primary calendar, 50
    upcoming events from now). With month=YYYY-MM the fetch covers that
    month's grid.
    """
    try:
        session = require_access_token(session)
        if month:
            fetch = fetch_month_events(backend_factory, week_start, tz)
            events = fetch(session, parse_month(month))
        else:
            events = backend_factory(session).list_events()
    except Unauthorized:
        return _unauthorized()
    except ValidationError as e:
        return _invalid("Invalid month", e.details)
    except CalendarError:
        logger.exception("Calendar API error while fetching events")
        return {"error": "Failed to fetch calendar events"}, 500

    return {"events": [event.to_api() for event in events], "success": True}, 200


def create_event(session: Session | None, backend_factory: BackendFactory, body: Any) -> Response:
    """POST /api/calendar/events."""
    try:
        session = require_access_token(session)
        event = validate_event_body(body)
        created = backend_factory(session).create_event(DEFAULT_CALENDAR_ID, event)
    except Unauthorized:
        return _unauthorized()
    except ValidationError as e:
        return _invalid("Invalid calendar event", e.details)
    except CalendarError:
        logger.exception("Calendar API error while creating event")
        return {"error": "Failed to create calendar event"}, 500

    return {"event": created.to_api(), "success": True}, 200


def update_event(
    session: Session | None,
    backend_factory: BackendFactory,
    event_id: str,
    body: Any,
) -> Response:
    """PUT /api/calendar/events/<event_id>."""
    try:
        session = require_access_token(session)
        event = validate_event_body(body)
        updated = backend_factory(session).update_event(DEFAULT_CALENDAR_ID, event_id, event)
    except Unauthorized:
        return _unauthorized()
    except ValidationError as e:
        return _invalid("Invalid calendar event", e.details)
    except NotFoundError:
        return {"error": "Event not found"}, 404
    except CalendarError:
        logger.exception("Calendar API error while updating event %s", event_id)
        return {"error": "Failed to update calendar event"}, 500

    return {"event": updated.to_api(), "success": True}, 200


def delete_event(session: Session | None, backend_factory: BackendFactory, event_id: str) -> Response:
    """DELETE /api/calendar/events/<event_id>."""
    try:
        session = require_access_token(session)
        backend_factory(session).delete_event(DEFAULT_CALENDAR_ID, event_id)
    except Unauthorized:
        return _unauthorized()
    except NotFoundError:
        return {"error": "Event not found"}, 404
    except CalendarError:
        logger.exception("Calendar API error while deleting event %s", event_id)
        return {"error": "Failed to delete calendar event"}, 500

    return {"success": True}, 200


def list_calendars(session: Session | None, backend_factory: BackendFactory) -> Response:
    """GET /api/calendar/calendars."""
    try:
        session = require_access_token(session)
        calendars = backend_factory(session).list_calendars()
    except Unauthorized:
        return _unauthorized()
    except CalendarError:
        logger.exception("Calendar API error while fetching calendars")
        return {"error": "Failed to fetch calendars"}, 500

    return {"calendars": [c.to_dict() for c in calendars], "success": True}, 200
