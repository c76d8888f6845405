"""Calendar web app HTTP server.

Flask app that:
- Renders the month view at GET / (sign-in prompt when signed out)
- Serves GET/POST /api/calendar/events
- Serves PUT/DELETE /api/calendar/events/<id>
- Serves GET /api/calendar/calendars
- Serves GET /api/health
- Mounts the Google sign-in routes under /auth

Handlers get the session explicitly from the cookie and a backend factory;
the backend is the Google Calendar API unless CALENDAR_BACKEND=memory.
"""

import logging
import secrets
import threading
import time
from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Flask, Response, current_app, jsonify, render_template, request

from config.settings import Settings, load_settings
from gcal.backend import CalendarBackend
from gcal.exceptions import ValidationError
from gcal.google_client import GoogleCalendarService
from gcal.memory import InMemoryCalendarService
from gcal.session import Session, SessionStore
from grid.renderer import MonthGrid, next_month, previous_month
from grid.view import CalendarView, LoadingState, SignInPrompt
from web import events_api
from web.audit import log_api_request
from web.auth import bp as auth_bp
from web.auth import SESSION_STORE_EXTENSION, load_session

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

_STARTED_AT = time.monotonic()

# user_id -> backend, only used with CALENDAR_BACKEND=memory (local development).
# Never evicted: the whole map goes away with the process.
_memory_backends: dict[str, InMemoryCalendarService] = {}
_memory_backends_lock = threading.Lock()


def create_app(settings: Settings | None = None) -> Flask:
    """Build the Flask app around the given (or environment) settings."""
    settings = settings or load_settings()

    flask_app = Flask(__name__)
    flask_app.config["SETTINGS"] = settings
    if settings.auth_secret:
        flask_app.secret_key = settings.auth_secret
    else:
        logger.warning("AUTH_SECRET is not set; sessions will not survive a restart")
        flask_app.secret_key = secrets.token_hex(32)

    flask_app.extensions[SESSION_STORE_EXTENSION] = SessionStore()
    flask_app.register_blueprint(auth_bp)
    flask_app.add_url_rule("/", "index", index)
    flask_app.add_url_rule("/api/calendar/events", "list_events", list_events, methods=["GET"])
    flask_app.add_url_rule("/api/calendar/events", "create_event", create_event, methods=["POST"])
    flask_app.add_url_rule(
        "/api/calendar/events/<event_id>", "update_event", update_event, methods=["PUT"]
    )
    flask_app.add_url_rule(
        "/api/calendar/events/<event_id>", "delete_event", delete_event, methods=["DELETE"]
    )
    flask_app.add_url_rule("/api/calendar/calendars", "list_calendars", list_calendars, methods=["GET"])
    flask_app.add_url_rule("/api/health", "health", health, methods=["GET"])
    return flask_app


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    return current_app.config["SETTINGS"]


def _user_timezone(settings: Settings) -> tzinfo:
    try:
        return ZoneInfo(settings.user_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown USER_TIMEZONE %r, falling back to UTC", settings.user_timezone)
        return timezone.utc


def get_calendar_backend(session: Session) -> CalendarBackend:
    """Build the calendar backend for a signed-in session."""
    settings = _settings()
    if settings.calendar_backend == "memory":
        with _memory_backends_lock:
            backend = _memory_backends.get(session.user_id)
            if backend is None:
                backend = InMemoryCalendarService(session.access_token)
                _memory_backends[session.user_id] = backend
        return backend
    return GoogleCalendarService(
        session.access_token,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
    )


def _respond(result: tuple[dict, int], session: Session | None, count_key: str | None = None) -> tuple[Response, int]:
    """Serialize a handler result and record it in the API request log."""
    payload, status = result
    item_count = len(payload[count_key]) if count_key and count_key in payload else None
    log_api_request(
        request.method,
        request.path,
        status,
        user_id=session.user_id if session else None,
        item_count=item_count,
        log_dir=_settings().audit_log_dir,
    )
    return jsonify(payload), status


# ---------------------------------------------------------------------------
# Page
# ---------------------------------------------------------------------------


def index() -> str:
    """Month view for the signed-in user, or a sign-in prompt."""
    settings = _settings()
    tz = _user_timezone(settings)

    view = CalendarView(
        fetch=events_api.fetch_month_events(get_calendar_backend, settings.week_start, tz),
        today=lambda: datetime.now(tz).date(),
        week_start=settings.week_start,
        tz=tz,
    )

    month_param = request.args.get("month")
    if month_param:
        try:
            view.show_month(events_api.parse_month(month_param))
        except ValidationError:
            logger.warning("Ignoring invalid month parameter %r", month_param)

    user_session = load_session()
    view.sign_in(user_session)
    state = view.render()

    if isinstance(state, SignInPrompt):
        return render_template("signin_prompt.html", prompt=state)

    return render_template(
        "calendar.html",
        grid=state if isinstance(state, MonthGrid) else None,
        loading=state if isinstance(state, LoadingState) else None,
        user=user_session,
        month=view.visible_month,
        prev_month=_month_param(previous_month(view.visible_month)),
        next_month=_month_param(next_month(view.visible_month)),
    )


def _month_param(month: date) -> str:
    return month.strftime("%Y-%m")


# ---------------------------------------------------------------------------
# Calendar API
# ---------------------------------------------------------------------------


def list_events() -> tuple[Response, int]:
    settings = _settings()
    user_session = load_session()
    result = events_api.list_events(
        user_session,
        get_calendar_backend,
        month=request.args.get("month"),
        week_start=settings.week_start,
        tz=_user_timezone(settings),
    )
    return _respond(result, user_session, count_key="events")


def create_event() -> tuple[Response, int]:
    user_session = load_session()
    body = request.get_json(silent=True)
    return _respond(events_api.create_event(user_session, get_calendar_backend, body), user_session)


def update_event(event_id: str) -> tuple[Response, int]:
    user_session = load_session()
    body = request.get_json(silent=True)
    result = events_api.update_event(user_session, get_calendar_backend, event_id, body)
    return _respond(result, user_session)


def delete_event(event_id: str) -> tuple[Response, int]:
    user_session = load_session()
    result = events_api.delete_event(user_session, get_calendar_backend, event_id)
    return _respond(result, user_session)


def list_calendars() -> tuple[Response, int]:
    user_session = load_session()
    result = events_api.list_calendars(user_session, get_calendar_backend)
    return _respond(result, user_session, count_key="calendars")


def health() -> tuple[Response, int]:
    """Health check endpoint for monitoring."""
    settings = _settings()
    return jsonify(
        {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - _STARTED_AT, 3),
            "environment": settings.environment,
            "version": VERSION,
        }
    ), 200
