"""Calendar Grid Renderer - month grid, event bucketing, navigation.

Pure functions from (visible month, flat event list) to a 6x7 grid of day
cells. Row 1 starts on the configured week-start day on or before the 1st
of the month; leading and trailing cells belong to the adjacent months.

Events are placed by their effective date: the local date of a timestamped
start, or the all-day start date. Matching is by date equality, so a
multi-day event shows up on its start date only. Events with no usable
start are left unplaced rather than treated as errors.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo

from gcal.models import CalendarEvent

GRID_ROWS = 6
DAYS_PER_WEEK = 7
GRID_CELLS = GRID_ROWS * DAYS_PER_WEEK
MAX_EVENTS_PER_DAY = 3

SUNDAY = 6
WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


@dataclass
class DayCell:
    """One grid cell: a date and the events that start on it."""

    date: date
    events: list[CalendarEvent] = field(default_factory=list)
    in_month: bool = True
    is_today: bool = False

    @property
    def visible_events(self) -> list[CalendarEvent]:
        return self.events[:MAX_EVENTS_PER_DAY]

    @property
    def overflow_count(self) -> int:
        """How many events are hidden behind the "+N more" indicator."""
        return max(len(self.events) - MAX_EVENTS_PER_DAY, 0)


@dataclass
class MonthGrid:
    """A rendered month: 6 rows of 7 cells plus events that could not be placed."""

    month: date
    week_start: int
    rows: list[list[DayCell]]
    unplaced: list[CalendarEvent] = field(default_factory=list)

    @property
    def cells(self) -> list[DayCell]:
        return [cell for row in self.rows for cell in row]

    @property
    def title(self) -> str:
        return self.month.strftime("%B %Y")

    @property
    def weekday_labels(self) -> list[str]:
        return weekday_labels(self.week_start)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


def month_start(day: date) -> date:
    """Normalize a date to the first of its month."""
    return day.replace(day=1)


def next_month(month: date) -> date:
    first = month_start(month)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def previous_month(month: date) -> date:
    first = month_start(month)
    if first.month == 1:
        return first.replace(year=first.year - 1, month=12)
    return first.replace(month=first.month - 1)


def current_month(today: date) -> date:
    return month_start(today)


# ---------------------------------------------------------------------------
# Grid geometry
# ---------------------------------------------------------------------------


def weekday_labels(week_start: int = SUNDAY) -> list[str]:
    """Column headers starting from week_start (0=Monday ... 6=Sunday)."""
    return WEEKDAY_LABELS[week_start:] + WEEKDAY_LABELS[:week_start]


def grid_start(month: date, week_start: int = SUNDAY) -> date:
    """First cell of the grid: the week-start day on or before the 1st."""
    first = month_start(month)
    offset = (first.weekday() - week_start) % DAYS_PER_WEEK
    return first - timedelta(days=offset)


def grid_dates(month: date, week_start: int = SUNDAY) -> list[date]:
    start = grid_start(month, week_start)
    return [start + timedelta(days=i) for i in range(GRID_CELLS)]


def grid_range(month: date, week_start: int = SUNDAY) -> tuple[date, date]:
    """First and last date shown for a month (inclusive)."""
    start = grid_start(month, week_start)
    return start, start + timedelta(days=GRID_CELLS - 1)


# ---------------------------------------------------------------------------
# Event placement
# ---------------------------------------------------------------------------


def effective_date(event: CalendarEvent, tz: tzinfo | None = None) -> date | None:
    """Date an event is bucketed under.

    Timestamped starts are converted to tz when both the timestamp and tz
    carry zone information; otherwise the timestamp's own wall-clock date is
    used. All-day starts use the date as written, independent of any zone.

    Returns:
        The effective date, or None if the event has no parseable start.
    """
    try:
        start_dt = event.start.as_datetime()
        if start_dt is not None:
            if tz is not None and start_dt.tzinfo is not None:
                start_dt = start_dt.astimezone(tz)
            return start_dt.date()
        return event.start.as_date()
    except (TypeError, ValueError):
        return None


def bucket_events(
    events: list[CalendarEvent],
    tz: tzinfo | None = None,
) -> tuple[dict[date, list[CalendarEvent]], list[CalendarEvent]]:
    """Group events by effective date, keeping upstream order within a day.

    Returns:
        (buckets keyed by date, events that have no effective date).
    """
    buckets: dict[date, list[CalendarEvent]] = defaultdict(list)
    unplaced: list[CalendarEvent] = []
    for event in events:
        day = effective_date(event, tz)
        if day is None:
            unplaced.append(event)
        else:
            buckets[day].append(event)
    return buckets, unplaced


def build_month_grid(
    month: date,
    events: list[CalendarEvent],
    today: date,
    week_start: int = SUNDAY,
    tz: tzinfo | None = None,
) -> MonthGrid:
    """Build the 42-cell grid for a month.

    Args:
        month: Any date in the month to display.
        events: Flat event list in upstream order.
        today: Current date at render time, for the "today" flag.
        week_start: First column weekday (0=Monday ... 6=Sunday).
        tz: Zone used to derive the local date of timestamped events.

    Returns:
        A MonthGrid with 6 rows of 7 cells.
    """
    first = month_start(month)
    buckets, unplaced = bucket_events(events, tz)

    cells = [
        DayCell(
            date=day,
            events=list(buckets.get(day, [])),
            in_month=(day.year, day.month) == (first.year, first.month),
            is_today=day == today,
        )
        for day in grid_dates(first, week_start)
    ]
    rows = [cells[i : i + DAYS_PER_WEEK] for i in range(0, GRID_CELLS, DAYS_PER_WEEK)]

    return MonthGrid(month=first, week_start=week_start, rows=rows, unplaced=unplaced)
