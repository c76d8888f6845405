"""Global Settings - Loads configuration from environment variables.

Centralizes all configuration so the web app and the calendar adapter
don't read env vars directly.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# Python's weekday numbering: Monday == 0 ... Sunday == 6
WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

CALENDAR_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/calendar",
]


@dataclass
class Settings:
    """Application-wide settings loaded from environment variables."""

    # Google OAuth client
    google_client_id: str = ""
    google_client_secret: str = ""

    # Session signing and external base URL for OAuth redirects
    auth_secret: str = ""
    auth_url: str = "http://localhost:3000"

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    environment: str = "development"

    # Calendar display
    user_timezone: str = "UTC"
    week_start: int = 6

    # "google" talks to the Calendar API, "memory" keeps events in-process
    calendar_backend: str = "google"

    audit_log_dir: str = "logs/api_requests"

    @property
    def oauth_configured(self) -> bool:
        """True when both OAuth client credentials are present."""
        return bool(self.google_client_id and self.google_client_secret)


def parse_week_start(value: str) -> int:
    """Translate a weekday name (or its 0-6 number) into Python weekday numbering.

    Raises:
        ValueError: If the value is not a weekday.
    """
    normalized = value.strip().lower()
    if normalized.isdigit() and 0 <= int(normalized) <= 6:
        return int(normalized)
    if normalized not in WEEKDAYS:
        raise ValueError(f"WEEK_START must be a weekday name, got: {value!r}")
    return WEEKDAYS[normalized]


def load_settings() -> Settings:
    """Load settings from environment variables with sensible defaults.

    Environment variables:
        GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET: OAuth client credentials
        AUTH_SECRET: Secret used to sign the session cookie
        AUTH_URL: Public base URL of the app (OAuth redirect target)
        APP_HOST, APP_PORT: Bind address for the web server
        APP_ENV: Environment name reported by the health check
        USER_TIMEZONE: IANA timezone used to place timed events on the grid
        WEEK_START: First day of the grid week (default "sunday")
        CALENDAR_BACKEND: "google" (default) or "memory"
        AUDIT_LOG_DIR: Directory for the NDJSON API request log

    Returns:
        A populated Settings instance.
    """
    return Settings(
        google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
        auth_secret=os.getenv("AUTH_SECRET", ""),
        auth_url=os.getenv("AUTH_URL", "http://localhost:3000").rstrip("/"),
        host=os.getenv("APP_HOST", "127.0.0.1"),
        port=int(os.getenv("APP_PORT", "3000")),
        environment=os.getenv("APP_ENV", "development"),
        user_timezone=os.getenv("USER_TIMEZONE", "UTC"),
        week_start=parse_week_start(os.getenv("WEEK_START", "sunday")),
        calendar_backend=os.getenv("CALENDAR_BACKEND", "google").strip().lower(),
        audit_log_dir=os.getenv("AUDIT_LOG_DIR", "logs/api_requests"),
    )
