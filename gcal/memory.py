"""In-memory calendar backend.

Used by the test suite and by ``CALENDAR_BACKEND=memory``, which keeps each
signed-in user's events in the server process instead of their Google
calendar. Follows the remote API's observable behavior closely enough for
the handlers: ids are assigned on create, listing returns events that
overlap [time_min, time_max) ordered by start, unknown ids raise
NotFoundError.
"""

import copy
import uuid
from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone, tzinfo

from gcal.backend import DEFAULT_CALENDAR_ID, DEFAULT_MAX_RESULTS, CalendarBackend
from gcal.exceptions import MissingCredentialError, NotFoundError
from gcal.models import CalendarEvent, CalendarInfo, EventTime


def _aware(dt: datetime, zone: tzinfo = timezone.utc) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=zone)


def _instant(boundary: EventTime, zone: tzinfo) -> datetime | None:
    """A boundary as an aware datetime; all-day dates start at midnight in zone."""
    moment = boundary.as_datetime()
    if moment is not None:
        return _aware(moment)
    day = boundary.as_date()
    if day is not None:
        return datetime.combine(day, time.min, tzinfo=zone)
    return None


def _span(event: CalendarEvent, zone: tzinfo) -> tuple[datetime, datetime] | None:
    """Start and (exclusive) end of an event, or None if it has no start.

    A missing or non-positive end falls back to one day for all-day events
    and to a zero-length instant for timed ones.
    """
    start = _instant(event.start, zone)
    if start is None:
        return None
    end = _instant(event.end, zone)
    if end is None or end <= start:
        end = start + timedelta(days=1) if event.start.is_all_day else start
    return start, end


class InMemoryCalendarService(CalendarBackend):
    """Calendar backend keeping events in process memory."""

    def __init__(
        self,
        access_token: str | None,
        calendars: list[CalendarInfo] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not access_token:
            raise MissingCredentialError()
        self.calendars = calendars or [CalendarInfo(id=DEFAULT_CALENDAR_ID, summary="Primary", primary=True)]
        self._events: dict[str, dict[str, CalendarEvent]] = {c.id: {} for c in self.calendars}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _calendar(self, calendar_id: str) -> dict[str, CalendarEvent]:
        return self._events.setdefault(calendar_id, {})

    def list_calendars(self) -> list[CalendarInfo]:
        return list(self.calendars)

    def list_events(
        self,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        max_results: int = DEFAULT_MAX_RESULTS,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
    ) -> list[CalendarEvent]:
        lower = _aware(time_min if time_min is not None else self._clock())
        upper = _aware(time_max) if time_max is not None else None
        # All-day dates are read in the caller's zone, as Google reads them in the calendar's
        zone = lower.tzinfo

        placed = []
        for event in self._calendar(calendar_id).values():
            span = _span(event, zone)
            if span is None:
                continue
            start, end = span
            # timeMin bounds the end, timeMax bounds the start
            if end < lower or (end == lower and start < end):
                continue
            if upper is not None and start >= upper:
                continue
            placed.append((start, event))

        placed.sort(key=lambda pair: pair[0])
        return [copy.deepcopy(event) for _, event in placed[:max_results]]

    def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        created = copy.deepcopy(event)
        created.id = uuid.uuid4().hex
        self._calendar(calendar_id)[created.id] = created
        return copy.deepcopy(created)

    def update_event(self, calendar_id: str, event_id: str, event: CalendarEvent) -> CalendarEvent:
        events = self._calendar(calendar_id)
        if event_id not in events:
            raise NotFoundError(event_id)
        updated = copy.deepcopy(event)
        updated.id = event_id
        events[event_id] = updated
        return copy.deepcopy(updated)

    def delete_event(self, calendar_id: str, event_id: str) -> bool:
        events = self._calendar(calendar_id)
        if event_id not in events:
            raise NotFoundError(event_id)
        del events[event_id]
        return True
