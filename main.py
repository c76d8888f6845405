"""Calendar App - Entry Point.

Starts the Flask web server that serves the month view, the calendar API
and the Google sign-in routes.

Usage:
    python main.py                 # Bind to APP_HOST:APP_PORT
    python main.py --port 8080     # Override the port
    python main.py --debug         # Flask debug mode with reloader
"""

import argparse
import logging

from config.settings import load_settings
from web.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")


def main() -> None:
    """Parse arguments and run the web server."""
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Serve the Google Calendar month view.")
    parser.add_argument("--host", default=settings.host, help="Address to bind to.")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on.")
    parser.add_argument("--debug", action="store_true", help="Run Flask in debug mode.")
    args = parser.parse_args()

    if not args.debug:
        # Suppress Werkzeug per-request logs; API requests have their own log
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    if not settings.oauth_configured and settings.calendar_backend == "google":
        logger.warning("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET are not set; sign-in will fail")

    app = create_app(settings)
    logger.info(
        "Calendar App starting on %s:%d (backend=%s, timezone=%s)",
        args.host,
        args.port,
        settings.calendar_backend,
        settings.user_timezone,
    )
    app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=args.debug)


if __name__ == "__main__":
    main()
