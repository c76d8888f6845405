"""Calendar event model and request-body validation.

Events keep the Google Calendar API JSON shape on the wire
(``summary``, ``start.dateTime`` / ``start.date``, ``attendees[].email``),
so ``from_api`` / ``to_api`` are thin and preserve fields we don't model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from gcal.exceptions import ValidationError

_EVENT_FIELDS = {"id", "summary", "description", "location", "start", "end", "attendees"}


def parse_datetime(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as returned by the Calendar API."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class EventTime:
    """One boundary of an event: a timestamped instant or an all-day date."""

    date_time: str | None = None
    date: str | None = None
    time_zone: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> EventTime:
        data = data or {}
        return cls(
            date_time=data.get("dateTime"),
            date=data.get("date"),
            time_zone=data.get("timeZone"),
        )

    def to_api(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.date_time:
            result["dateTime"] = self.date_time
        if self.date:
            result["date"] = self.date
        if self.time_zone:
            result["timeZone"] = self.time_zone
        return result

    @property
    def is_all_day(self) -> bool:
        return not self.date_time and bool(self.date)

    @property
    def is_empty(self) -> bool:
        return not self.date_time and not self.date

    def as_datetime(self) -> datetime | None:
        """The timestamped instant, or None for all-day and empty boundaries."""
        if not self.date_time:
            return None
        return parse_datetime(self.date_time)

    def as_date(self) -> date | None:
        """The all-day date, or None when the boundary has no date field."""
        if not self.date:
            return None
        return date.fromisoformat(self.date)


@dataclass
class CalendarEvent:
    """Represents a Google Calendar event."""

    # None for untitled events; Google omits the key rather than sending ""
    summary: str | None = None
    start: EventTime = field(default_factory=EventTime)
    end: EventTime = field(default_factory=EventTime)
    id: str | None = None
    description: str | None = None
    location: str | None = None
    # Attendee objects as Google sends them (email, responseStatus, organizer, ...)
    attendees: list[dict[str, Any]] = field(default_factory=list)
    # Remote fields passed through untouched (htmlLink, status, ...)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> CalendarEvent:
        """Parse an event from an API response or a request body."""
        attendees = [dict(a) for a in data.get("attendees") or [] if isinstance(a, dict)]
        return cls(
            id=data.get("id"),
            summary=data.get("summary"),
            description=data.get("description"),
            location=data.get("location"),
            start=EventTime.from_api(data.get("start")),
            end=EventTime.from_api(data.get("end")),
            attendees=attendees,
            extra={k: v for k, v in data.items() if k not in _EVENT_FIELDS},
        )

    @property
    def attendee_emails(self) -> list[str]:
        return [a["email"] for a in self.attendees if a.get("email")]

    def to_api(self) -> dict[str, Any]:
        """Serialize back to the Calendar API shape."""
        body: dict[str, Any] = dict(self.extra)
        if self.id:
            body["id"] = self.id
        if self.summary is not None:
            body["summary"] = self.summary
        if self.description is not None:
            body["description"] = self.description
        if self.location is not None:
            body["location"] = self.location
        if not self.start.is_empty:
            body["start"] = self.start.to_api()
        if not self.end.is_empty:
            body["end"] = self.end.to_api()
        if self.attendees:
            body["attendees"] = [dict(a) for a in self.attendees]
        return body


@dataclass
class CalendarInfo:
    """Represents an entry of the user's calendar list."""

    id: str
    summary: str
    primary: bool = False
    time_zone: str | None = None
    background_color: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> CalendarInfo:
        return cls(
            id=data["id"],
            summary=data.get("summaryOverride") or data.get("summary", ""),
            primary=data.get("primary", False),
            time_zone=data.get("timeZone"),
            background_color=data.get("backgroundColor"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "summary": self.summary,
            "primary": self.primary,
            "timeZone": self.time_zone,
            "backgroundColor": self.background_color,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_boundary(value: Any, name: str, errors: list[str]) -> EventTime | None:
    """Validate one start/end object, appending problems to errors."""
    if not isinstance(value, dict):
        errors.append(f"'{name}' is required and must be an object.")
        return None

    boundary = EventTime.from_api(value)
    if boundary.is_empty:
        errors.append(f"'{name}' must include 'dateTime' or 'date'.")
        return None

    try:
        if boundary.date_time:
            boundary.as_datetime()
        else:
            boundary.as_date()
    except (TypeError, ValueError):
        errors.append(f"'{name}' has an unparseable date or time.")
        return None

    return boundary


def start_after_end(start: EventTime, end: EventTime) -> bool:
    """Check whether start is chronologically after end.

    Two timestamps are compared as instants when both carry an offset, and by
    wall-clock time otherwise. Anything involving an all-day boundary is
    compared by calendar date.
    """
    start_dt = start.as_datetime()
    end_dt = end.as_datetime()
    if start_dt is not None and end_dt is not None:
        if start_dt.tzinfo is None or end_dt.tzinfo is None:
            return start_dt.replace(tzinfo=None) > end_dt.replace(tzinfo=None)
        return start_dt > end_dt

    start_day = start_dt.date() if start_dt is not None else start.as_date()
    end_day = end_dt.date() if end_dt is not None else end.as_date()
    return start_day > end_day


def validate_event_body(body: Any) -> CalendarEvent:
    """Check a client-supplied event body before it is forwarded upstream.

    Required: a non-empty ``summary``, ``start`` and ``end`` objects each
    carrying ``dateTime`` or ``date``, and start not after end. Attendees,
    when present, must be a list of objects with an ``email``.

    Returns:
        The parsed CalendarEvent.

    Raises:
        ValidationError: Listing every problem found.
    """
    if not isinstance(body, dict):
        raise ValidationError(["Event body must be a JSON object."])

    errors: list[str] = []

    summary = body.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        errors.append("'summary' is required.")

    start = _check_boundary(body.get("start"), "start", errors)
    end = _check_boundary(body.get("end"), "end", errors)

    attendees = body.get("attendees")
    if attendees is not None:
        if not isinstance(attendees, list):
            errors.append("'attendees' must be a list.")
        else:
            for i, attendee in enumerate(attendees):
                if not isinstance(attendee, dict) or not attendee.get("email"):
                    errors.append(f"attendees[{i}] must include 'email'.")

    if start is not None and end is not None and start_after_end(start, end):
        errors.append("'start' must not be after 'end'.")

    if errors:
        raise ValidationError(errors)

    return CalendarEvent.from_api(body)
