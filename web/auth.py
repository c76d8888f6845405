"""Google sign-in routes and session storage.

Implements the OAuth web-server flow with google-auth-oauthlib:
/auth/google redirects to Google's consent screen, /auth/callback exchanges
the code for tokens, looks up the user's id and stores a Session in the
server-side SessionStore. The signed Flask cookie carries only the store
key plus the short-lived OAuth state. Tokens are not refreshed here; once the access token
expires the calendar API rejects it and the user signs in again.
"""

import logging
from datetime import timezone
from typing import Any

import requests
from flask import Blueprint, Response, current_app, redirect, render_template, request, session, url_for
from google_auth_oauthlib.flow import Flow

from config.settings import CALENDAR_SCOPES, Settings
from gcal.google_client import TOKEN_URI
from gcal.session import Session, SessionStore

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

SESSION_STORE_EXTENSION = "calendar_sessions"
SESSION_KEY = "calendar_session"
STATE_KEY = "oauth_state"
VERIFIER_KEY = "oauth_code_verifier"

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

ERROR_MESSAGES: dict[str, dict[str, Any]] = {
    "Configuration": {
        "title": "Authentication Configuration Error",
        "description": "There is a problem with the authentication configuration. "
        "This usually means environment variables are missing or incorrect.",
        "details": [
            "Check that GOOGLE_CLIENT_ID is set",
            "Check that GOOGLE_CLIENT_SECRET is set",
            "Check that AUTH_SECRET is set",
            "Verify AUTH_URL matches your domain",
        ],
    },
    "AccessDenied": {
        "title": "Access Denied",
        "description": "You do not have permission to access this application.",
        "details": ["Contact your administrator for access"],
    },
    "Verification": {
        "title": "Verification Error",
        "description": "The verification token has expired or has already been used.",
        "details": ["Try signing in again"],
    },
}

DEFAULT_ERROR = {
    "title": "Authentication Error",
    "description": "An error occurred during authentication.",
    "details": ["Please try again or contact support"],
}


def get_settings() -> Settings:
    return current_app.config["SETTINGS"]


# ---------------------------------------------------------------------------
# Session storage
# ---------------------------------------------------------------------------


def get_session_store() -> SessionStore:
    return current_app.extensions[SESSION_STORE_EXTENSION]


def load_session() -> Session | None:
    """Resolve the cookie's session key to the signed-in user's Session."""
    return get_session_store().load(session.get(SESSION_KEY))


def store_session(user_session: Session) -> None:
    """Keep the Session server-side; the cookie only gets its opaque key."""
    store = get_session_store()
    store.delete(session.get(SESSION_KEY))
    session[SESSION_KEY] = store.save(user_session)


def clear_session() -> None:
    get_session_store().delete(session.pop(SESSION_KEY, None))
    session.pop(STATE_KEY, None)
    session.pop(VERIFIER_KEY, None)


# ---------------------------------------------------------------------------
# OAuth helpers
# ---------------------------------------------------------------------------


def build_flow(settings: Settings, state: str | None = None, code_verifier: str | None = None) -> Flow:
    """Create an OAuth web flow for the configured client.

    The callback runs in a new request, so the state and PKCE verifier
    issued with the consent redirect are passed back in here.
    """
    client_config = {
        "web": {
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
        }
    }
    flow = Flow.from_client_config(
        client_config, scopes=CALENDAR_SCOPES, state=state, code_verifier=code_verifier
    )
    flow.redirect_uri = f"{settings.auth_url}/auth/callback"
    return flow


def fetch_user_info(access_token: str, timeout: int = 10) -> dict[str, Any]:
    """Look up the signed-in user's profile (sub, email, name).

    Raises:
        requests.RequestException: If the userinfo endpoint is unreachable or errors.
    """
    response = requests.get(
        USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=timeout,
    )
    response.raise_for_status()
    return response.json()


def _error_redirect(code: str) -> Response:
    return redirect(url_for("auth.error", error=code))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@bp.route("/signin", methods=["GET"])
def signin() -> str:
    return render_template("signin.html", configured=get_settings().oauth_configured)


@bp.route("/google", methods=["GET"])
def google_signin() -> Response:
    """Redirect to Google's consent screen."""
    settings = get_settings()
    if not settings.oauth_configured:
        logger.error("Sign-in attempted without GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET")
        return _error_redirect("Configuration")

    flow = build_flow(settings)
    authorization_url, state = flow.authorization_url(
        access_type="offline",
        prompt="consent",
        include_granted_scopes="true",
    )
    session[STATE_KEY] = state
    session[VERIFIER_KEY] = flow.code_verifier
    return redirect(authorization_url)


@bp.route("/callback", methods=["GET"])
def callback() -> Response:
    """Finish the OAuth flow and store the session."""
    settings = get_settings()

    if request.args.get("error"):
        logger.warning("Google sign-in declined: %s", request.args.get("error"))
        return _error_redirect("AccessDenied")

    expected_state = session.pop(STATE_KEY, None)
    code_verifier = session.pop(VERIFIER_KEY, None)
    code = request.args.get("code")
    if not code or not expected_state or request.args.get("state") != expected_state:
        logger.warning("OAuth callback with missing code or mismatched state")
        return _error_redirect("Verification")

    flow = build_flow(settings, state=expected_state, code_verifier=code_verifier)
    try:
        flow.fetch_token(code=code)
    except Exception as e:
        logger.error("Failed to exchange authorization code: %s", e)
        return _error_redirect("Verification")

    credentials = flow.credentials
    try:
        profile = fetch_user_info(credentials.token)
    except requests.RequestException as e:
        logger.error("Failed to fetch user info: %s", e)
        return _error_redirect("Callback")

    expires = None
    if credentials.expiry is not None:
        # google-auth keeps expiry as naive UTC
        expires = credentials.expiry.replace(tzinfo=timezone.utc).timestamp()

    store_session(
        Session(
            user_id=profile["sub"],
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            access_token_expires=expires,
            email=profile.get("email"),
            name=profile.get("name"),
        )
    )
    logger.info("User %s signed in", profile["sub"])
    return redirect(url_for("index"))


@bp.route("/signout", methods=["GET", "POST"])
def signout() -> Response:
    clear_session()
    return redirect(url_for("index"))


@bp.route("/error", methods=["GET"])
def error() -> str:
    code = request.args.get("error")
    info = ERROR_MESSAGES.get(code, DEFAULT_ERROR)
    return render_template("auth_error.html", error=code, info=info)
