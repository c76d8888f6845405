"""Tests for the Flask app - API routes, month page, sign-in routes."""

import json
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from config.settings import Settings
from gcal.exceptions import UpstreamError
from gcal.models import CalendarEvent, EventTime
from gcal.session import Session, SessionStore
from web.auth import SESSION_KEY, SESSION_STORE_EXTENSION, STATE_KEY, VERIFIER_KEY
from web.server import _user_timezone, create_app, get_calendar_backend

VALID_BODY = {
    "summary": "Team Standup",
    "start": {"dateTime": "2024-03-12T09:00:00Z"},
    "end": {"dateTime": "2024-03-12T09:30:00Z"},
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_memory_backends(monkeypatch):
    monkeypatch.setattr("web.server._memory_backends", {})


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        auth_secret="test-secret",
        calendar_backend="memory",
        user_timezone="UTC",
        audit_log_dir=str(tmp_path / "audit"),
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


def session_store(client) -> SessionStore:
    return client.application.extensions[SESSION_STORE_EXTENSION]


def sign_in(client, token: str | None = "token-abc", user_id: str = "user-1") -> None:
    key = session_store(client).save(Session(user_id=user_id, access_token=token, email="me@example.com"))
    with client.session_transaction() as sess:
        sess[SESSION_KEY] = key


def cookie_payload(client) -> dict:
    """Decode the signed session cookie the way Flask reads it back."""
    app = client.application
    cookie = client.get_cookie(app.config["SESSION_COOKIE_NAME"])
    return app.session_interface.get_signing_serializer(app).loads(cookie.value)


# ---------------------------------------------------------------------------
# Calendar API
# ---------------------------------------------------------------------------


class TestEventsApi:
    def test_get_without_session_is_401(self, client) -> None:
        response = client.get("/api/calendar/events")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}

    def test_get_with_session_lacking_token_is_401(self, client) -> None:
        sign_in(client, token=None)
        assert client.get("/api/calendar/events").status_code == 401

    def test_post_without_session_is_401(self, client) -> None:
        assert client.post("/api/calendar/events", json=VALID_BODY).status_code == 401

    def test_create_then_list_month(self, client) -> None:
        sign_in(client)
        created = client.post("/api/calendar/events", json=VALID_BODY)
        assert created.status_code == 200
        body = created.get_json()
        assert body["success"] is True
        assert body["event"]["id"]

        listed = client.get("/api/calendar/events?month=2024-03")
        assert listed.status_code == 200
        data = listed.get_json()
        assert data["success"] is True
        assert [e["id"] for e in data["events"]] == [body["event"]["id"]]

    def test_post_invalid_body_is_400(self, client) -> None:
        sign_in(client)
        response = client.post("/api/calendar/events", json={"summary": "No times"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid calendar event"

    def test_post_non_json_is_400(self, client) -> None:
        sign_in(client)
        response = client.post("/api/calendar/events", data="not json", content_type="text/plain")
        assert response.status_code == 400

    def test_get_invalid_month_is_400(self, client) -> None:
        sign_in(client)
        assert client.get("/api/calendar/events?month=2024-13").status_code == 400

    def test_update_and_delete(self, client) -> None:
        sign_in(client)
        event_id = client.post("/api/calendar/events", json=VALID_BODY).get_json()["event"]["id"]

        renamed = dict(VALID_BODY, summary="Renamed")
        response = client.put(f"/api/calendar/events/{event_id}", json=renamed)
        assert response.status_code == 200
        assert response.get_json()["event"]["summary"] == "Renamed"

        assert client.delete(f"/api/calendar/events/{event_id}").status_code == 200
        assert client.delete(f"/api/calendar/events/{event_id}").status_code == 404
        assert client.put(f"/api/calendar/events/{event_id}", json=renamed).status_code == 404

    def test_users_do_not_share_memory_calendars(self, client) -> None:
        sign_in(client, user_id="alice")
        client.post("/api/calendar/events", json=VALID_BODY)

        sign_in(client, user_id="bob")
        assert client.get("/api/calendar/events?month=2024-03").get_json()["events"] == []

    def test_list_calendars(self, client) -> None:
        sign_in(client)
        response = client.get("/api/calendar/calendars")
        assert response.status_code == 200
        assert response.get_json()["calendars"][0]["primary"] is True


class TestGoogleBackend:
    @pytest.fixture
    def settings(self, tmp_path) -> Settings:
        return Settings(
            auth_secret="test-secret",
            google_client_id="cid",
            google_client_secret="csecret",
            calendar_backend="google",
            audit_log_dir=str(tmp_path / "audit"),
        )

    @patch("web.server.GoogleCalendarService")
    def test_adapter_built_from_session_token(self, mock_service_cls, client) -> None:
        mock_service_cls.return_value.list_events.return_value = []
        sign_in(client, token="tok-123")

        response = client.get("/api/calendar/events")

        assert response.status_code == 200
        assert response.get_json() == {"events": [], "success": True}
        mock_service_cls.assert_called_once_with("tok-123", client_id="cid", client_secret="csecret")

    @patch("web.server.GoogleCalendarService")
    def test_upstream_detail_not_leaked(self, mock_service_cls, client) -> None:
        mock_service_cls.return_value.list_events.side_effect = UpstreamError(
            "Request had invalid authentication credentials", status=401
        )
        sign_in(client)

        response = client.get("/api/calendar/events")

        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to fetch calendar events"}
        assert b"invalid authentication" not in response.data

    @patch("web.server.GoogleCalendarService")
    def test_page_renders_empty_grid_on_failure(self, mock_service_cls, client) -> None:
        mock_service_cls.return_value.list_events.side_effect = UpstreamError("boom")
        sign_in(client)

        response = client.get("/?month=2024-03")

        assert response.status_code == 200
        assert b"March 2024" in response.data
        assert b'class="event"' not in response.data


# ---------------------------------------------------------------------------
# Month page
# ---------------------------------------------------------------------------


class TestIndexPage:
    def test_signed_out_shows_prompt(self, client) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert b"Sign in to view your calendar" in response.data

    @patch("web.server.get_calendar_backend")
    def test_signed_out_does_not_fetch(self, mock_backend, client) -> None:
        client.get("/?month=2024-03")
        mock_backend.assert_not_called()

    def test_signed_in_shows_events_with_overflow(self, client) -> None:
        sign_in(client)
        for i in range(5):
            client.post("/api/calendar/events", json=dict(VALID_BODY, summary=f"Meeting {i}"))

        response = client.get("/?month=2024-03")

        assert response.status_code == 200
        page = response.data.decode("utf-8")
        assert "March 2024" in page
        assert "Meeting 0" in page
        assert "Meeting 2" in page
        assert "Meeting 3" not in page
        assert "+2 more" in page
        assert "month=2024-02" in page
        assert "month=2024-04" in page

    def test_untitled_event_gets_placeholder(self, client) -> None:
        sign_in(client)
        with client.application.app_context():
            backend = get_calendar_backend(Session(user_id="user-1", access_token="token-abc"))
            backend.create_event("primary", CalendarEvent(start=EventTime(date="2024-03-05")))

        page = client.get("/?month=2024-03").data.decode("utf-8")

        assert "(No title)" in page
        assert ">None<" not in page

    def test_invalid_month_falls_back(self, client) -> None:
        sign_in(client)
        response = client.get("/?month=garbage")
        assert response.status_code == 200
        assert b'class="grid"' in response.data


# ---------------------------------------------------------------------------
# Health and audit log
# ---------------------------------------------------------------------------


class TestBackendSelection:
    def test_concurrent_first_requests_share_one_store(self, app) -> None:
        user = Session(user_id="user-1", access_token="token-abc")
        barrier = threading.Barrier(8)
        backends = []

        def first_request() -> None:
            with app.app_context():
                barrier.wait()
                backends.append(get_calendar_backend(user))

        threads = [threading.Thread(target=first_request) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(backends) == 8
        assert all(backend is backends[0] for backend in backends)

    def test_user_timezone_resolved(self) -> None:
        assert _user_timezone(Settings(user_timezone="America/New_York")) == ZoneInfo("America/New_York")

    @pytest.mark.parametrize("name", ["Not/AZone", ""])
    def test_unknown_timezone_falls_back_to_utc(self, name) -> None:
        assert _user_timezone(Settings(user_timezone=name)) is timezone.utc


class TestHealthAndAudit:
    def test_health(self, client) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["environment"] == "development"
        assert data["version"]
        assert data["uptime"] >= 0

    def test_api_requests_are_logged(self, client, settings, tmp_path) -> None:
        client.get("/api/calendar/events")
        sign_in(client)
        client.get("/api/calendar/events?month=2024-03")

        log_files = list((tmp_path / "audit").glob("*.log"))
        assert len(log_files) == 1
        entries = [json.loads(line) for line in log_files[0].read_text().strip().split("\n")]
        assert [e["status"] for e in entries] == [401, 200]
        assert entries[0]["user_id"] is None
        assert entries[1]["user_id"] == "user-1"
        assert entries[1]["item_count"] == 0
        assert "token-abc" not in log_files[0].read_text()


# ---------------------------------------------------------------------------
# Sign-in routes
# ---------------------------------------------------------------------------


class TestAuthRoutes:
    def test_signin_page(self, client) -> None:
        response = client.get("/auth/signin")
        assert response.status_code == 200
        assert b"Sign in with Google" in response.data

    def test_google_without_credentials_redirects_to_configuration_error(self, client) -> None:
        response = client.get("/auth/google")
        assert response.status_code == 302
        assert "error=Configuration" in response.headers["Location"]

    def test_google_redirects_to_consent(self, tmp_path) -> None:
        app = create_app(
            Settings(
                auth_secret="test-secret",
                google_client_id="cid",
                google_client_secret="csecret",
                auth_url="http://localhost:3000",
                audit_log_dir=str(tmp_path),
            )
        )
        with app.test_client() as client:
            response = client.get("/auth/google")
            assert response.status_code == 302
            location = response.headers["Location"]
            assert location.startswith("https://accounts.google.com/o/oauth2/auth")
            assert "client_id=cid" in location
            with client.session_transaction() as sess:
                assert sess[STATE_KEY]

    def test_callback_declined(self, client) -> None:
        response = client.get("/auth/callback?error=access_denied")
        assert "error=AccessDenied" in response.headers["Location"]

    def test_callback_state_mismatch(self, client) -> None:
        with client.session_transaction() as sess:
            sess[STATE_KEY] = "expected"
        response = client.get("/auth/callback?code=abc&state=forged")
        assert "error=Verification" in response.headers["Location"]

    @patch("web.auth.fetch_user_info")
    @patch("web.auth.build_flow")
    def test_callback_stores_session(self, mock_build_flow, mock_user_info, client) -> None:
        flow = MagicMock()
        flow.credentials.token = "new-access-token"
        flow.credentials.refresh_token = "refresh"
        flow.credentials.expiry = datetime(2030, 1, 1)
        mock_build_flow.return_value = flow
        mock_user_info.return_value = {"sub": "google-123", "email": "me@example.com", "name": "Me"}

        with client.session_transaction() as sess:
            sess[STATE_KEY] = "state-1"
            sess[VERIFIER_KEY] = "verifier-1"

        response = client.get("/auth/callback?code=abc&state=state-1")

        assert response.status_code == 302
        assert mock_build_flow.call_args.kwargs == {"state": "state-1", "code_verifier": "verifier-1"}
        flow.fetch_token.assert_called_once_with(code="abc")
        mock_user_info.assert_called_once_with("new-access-token")
        with client.session_transaction() as sess:
            key = sess[SESSION_KEY]
            assert STATE_KEY not in sess
        stored = session_store(client).load(key)
        assert stored.user_id == "google-123"
        assert stored.access_token == "new-access-token"
        assert stored.refresh_token == "refresh"
        assert stored.access_token_expires == datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp()

    @patch("web.auth.fetch_user_info")
    @patch("web.auth.build_flow")
    def test_tokens_never_reach_the_cookie(self, mock_build_flow, mock_user_info, client) -> None:
        flow = MagicMock()
        flow.credentials.token = "new-access-token"
        flow.credentials.refresh_token = "long-lived-refresh-token"
        flow.credentials.expiry = None
        mock_build_flow.return_value = flow
        mock_user_info.return_value = {"sub": "google-123", "email": "me@example.com"}
        with client.session_transaction() as sess:
            sess[STATE_KEY] = "state-1"

        client.get("/auth/callback?code=abc&state=state-1")

        cookie_text = json.dumps(cookie_payload(client))
        assert "new-access-token" not in cookie_text
        assert "long-lived-refresh-token" not in cookie_text
        assert client.get("/api/calendar/calendars").status_code == 200

    def test_unknown_session_key_is_signed_out(self, client) -> None:
        with client.session_transaction() as sess:
            sess[SESSION_KEY] = "forged-or-expired-key"
        assert client.get("/api/calendar/events").status_code == 401
        assert b"Sign in to view your calendar" in client.get("/").data

    @patch("web.auth.build_flow")
    def test_callback_token_exchange_failure(self, mock_build_flow, client) -> None:
        mock_build_flow.return_value.fetch_token.side_effect = ValueError("invalid_grant")
        with client.session_transaction() as sess:
            sess[STATE_KEY] = "state-1"
        response = client.get("/auth/callback?code=abc&state=state-1")
        assert "error=Verification" in response.headers["Location"]

    def test_signout_clears_session(self, client) -> None:
        sign_in(client)
        with client.session_transaction() as sess:
            key = sess[SESSION_KEY]

        response = client.get("/auth/signout")

        assert response.status_code == 302
        with client.session_transaction() as sess:
            assert SESSION_KEY not in sess
        assert session_store(client).load(key) is None
        assert client.get("/api/calendar/events").status_code == 401

    @pytest.mark.parametrize(
        "code,title",
        [("Configuration", b"Authentication Configuration Error"), ("AccessDenied", b"Access Denied"),
         ("Verification", b"Verification Error"), ("Other", b"Authentication Error")],
    )
    def test_error_page(self, client, code, title) -> None:
        response = client.get(f"/auth/error?error={code}")
        assert response.status_code == 200
        assert title in response.data
