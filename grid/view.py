"""Calendar view state - session gate, navigation, loading and refetch.

Owns the visible month and the event list for one viewer. Fetching is
delegated to an injected callable so the view can be driven by the web
page, the tests, or anything else that can produce events.

Every fetch gets a generation number. Only the result of the latest
generation is applied; a response that arrives after the viewer has
navigated again is dropped instead of overwriting the newer month.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, tzinfo

from gcal.exceptions import CalendarError
from gcal.models import CalendarEvent
from gcal.session import Session
from grid.renderer import (
    SUNDAY,
    MonthGrid,
    build_month_grid,
    current_month,
    month_start,
    next_month,
    previous_month,
)

logger = logging.getLogger(__name__)

FetchEvents = Callable[[Session, date], list[CalendarEvent]]


@dataclass
class SignInPrompt:
    """Shown instead of the calendar when nobody is signed in."""

    title: str = "Sign in to view your calendar"
    message: str = "Connect your Google account to access your calendar events"


@dataclass
class LoadingState:
    """Shown while events for the visible month are being fetched."""

    month: date
    message: str = "Loading events..."


class CalendarView:
    """Month calendar state machine for one viewer."""

    def __init__(
        self,
        fetch: FetchEvents,
        today: Callable[[], date] = date.today,
        week_start: int = SUNDAY,
        tz: tzinfo | None = None,
    ) -> None:
        """Initialize the view on the current month with no session.

        Args:
            fetch: Called as fetch(session, visible_month); may raise CalendarError.
            today: Returns the current real-world date.
            week_start: First grid column weekday (0=Monday ... 6=Sunday).
            tz: Zone used to place timed events on the grid.
        """
        self._fetch = fetch
        self._today = today
        self.week_start = week_start
        self.tz = tz

        self.session: Session | None = None
        self.visible_month = current_month(today())
        self.events: list[CalendarEvent] = []
        self.loading = False
        self._generation = 0

    @property
    def authenticated(self) -> bool:
        return self.session is not None and self.session.has_access_token

    @property
    def generation(self) -> int:
        return self._generation

    # ---------------------------------------------------------------------
    # Session gate
    # ---------------------------------------------------------------------

    def sign_in(self, session: Session | None) -> int | None:
        """Admit a session; an authenticated session triggers an immediate fetch."""
        self.session = session
        return self.refresh()

    def sign_out(self) -> None:
        self.session = None
        self.events = []
        self.loading = False
        # Invalidate anything still in flight
        self._generation += 1

    # ---------------------------------------------------------------------
    # Navigation
    # ---------------------------------------------------------------------

    def next(self) -> int | None:
        self.visible_month = next_month(self.visible_month)
        return self.refresh()

    def previous(self) -> int | None:
        self.visible_month = previous_month(self.visible_month)
        return self.refresh()

    def today(self) -> int | None:
        self.visible_month = current_month(self._today())
        return self.refresh()

    def show_month(self, month: date) -> int | None:
        self.visible_month = month_start(month)
        return self.refresh()

    # ---------------------------------------------------------------------
    # Fetch lifecycle
    # ---------------------------------------------------------------------

    def begin_fetch(self) -> int | None:
        """Start a fetch for the visible month.

        Returns:
            The fetch generation, or None when the session gate is closed.
        """
        if not self.authenticated:
            return None
        self._generation += 1
        self.loading = True
        return self._generation

    def complete_fetch(self, generation: int, events: list[CalendarEvent]) -> bool:
        """Apply fetched events if they belong to the latest fetch."""
        if generation != self._generation:
            logger.debug("Dropping stale fetch result (generation %d, latest %d)", generation, self._generation)
            return False
        self.events = list(events)
        self.loading = False
        return True

    def fail_fetch(self, generation: int, error: Exception | None = None) -> bool:
        """Record a failed fetch: empty event list, loading cleared, no retry."""
        if generation != self._generation:
            return False
        if error is not None:
            logger.warning("Fetching events for %s failed: %s", self.visible_month.strftime("%Y-%m"), error)
        self.events = []
        self.loading = False
        return True

    def refresh(self) -> int | None:
        """Fetch events for the visible month synchronously."""
        generation = self.begin_fetch()
        if generation is None:
            return None
        try:
            events = self._fetch(self.session, self.visible_month)
        except CalendarError as e:
            self.fail_fetch(generation, e)
        else:
            self.complete_fetch(generation, events)
        return generation

    # ---------------------------------------------------------------------
    # Rendering
    # ---------------------------------------------------------------------

    def render(self) -> SignInPrompt | LoadingState | MonthGrid:
        if not self.authenticated:
            return SignInPrompt()
        if self.loading:
            return LoadingState(month=self.visible_month)
        return build_month_grid(
            self.visible_month,
            self.events,
            today=self._today(),
            week_start=self.week_start,
            tz=self.tz,
        )
