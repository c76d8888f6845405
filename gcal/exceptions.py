"""Calendar error taxonomy."""


class CalendarError(Exception):
    """Base exception for calendar adapter errors."""

    pass


class MissingCredentialError(CalendarError):
    """Raised when no access token is available to build the adapter."""

    def __init__(self, message: str = "No access token available"):
        super().__init__(message)


class UpstreamError(CalendarError):
    """Raised when the remote calendar service call fails."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class NotFoundError(CalendarError):
    """Raised when the remote service reports the target event does not exist."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class ValidationError(CalendarError):
    """Raised when an event body fails the local schema check."""

    def __init__(self, details: list[str]):
        self.details = details
        super().__init__("; ".join(details))


class Unauthorized(CalendarError):
    """Raised when a request arrives without a session access token."""

    pass
