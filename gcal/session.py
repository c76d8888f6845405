"""Signed-in user session as seen by the calendar code.

The session is produced by the sign-in flow and passed explicitly to the
request handlers and the page view; nothing here reads global state. Token
refresh is not performed: only the presence of an access token is checked.

Sessions live server-side in a SessionStore. The browser cookie only holds
the opaque key returned by ``SessionStore.save``, so OAuth tokens never
leave the server.
"""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

# Matches the 30-day session lifetime users get from the hosted sign-in
DEFAULT_SESSION_TTL = 30 * 24 * 60 * 60


@dataclass
class Session:
    """Authenticated user with their OAuth tokens."""

    user_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    access_token_expires: float | None = None  # epoch seconds
    email: str | None = None
    name: str | None = None

    @property
    def has_access_token(self) -> bool:
        return bool(self.access_token)


class SessionStore:
    """In-process session storage keyed by random opaque ids.

    Entries expire after ttl_seconds and are evicted lazily. The store is
    per process: a restart signs everybody out.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, tuple[Session, float]] = {}
        self._lock = threading.Lock()

    def save(self, session: Session) -> str:
        """Store a session and return the key to hand to the browser."""
        key = secrets.token_urlsafe(32)
        with self._lock:
            self._evict_expired()
            self._sessions[key] = (session, self._clock() + self.ttl_seconds)
        return key

    def load(self, key: object) -> Session | None:
        """Look up a live session; None for unknown, expired or malformed keys."""
        if not isinstance(key, str) or not key:
            return None
        with self._lock:
            self._evict_expired()
            entry = self._sessions.get(key)
        return entry[0] if entry else None

    def delete(self, key: object) -> None:
        if not isinstance(key, str):
            return
        with self._lock:
            self._sessions.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._sessions)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires) in self._sessions.items() if now >= expires]
        for k in expired:
            del self._sessions[k]
