"""API request logger.

Logs every calendar API request to daily log files as newline-delimited
JSON (NDJSON): which endpoint was hit, by whom, and how it ended. Access
tokens and event bodies are never written; upstream error detail goes to
the regular application log instead.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

# Default directory for API request logs
LOG_DIR = Path(__file__).parent.parent / "logs" / "api_requests"

# Standard Python logger for error-level events
_error_logger = logging.getLogger("web.audit")


def log_api_request(
    method: str,
    endpoint: str,
    status: int,
    user_id: str | None = None,
    item_count: int | None = None,
    log_dir: str | Path | None = None,
) -> None:
    """Append one API request entry to today's log file.

    Each log entry is a JSON object on its own line, which makes it easy
    to filter with jq.

    Args:
        method: HTTP method.
        endpoint: Request path.
        status: Response status code.
        user_id: Signed-in user, if any.
        item_count: Number of events/calendars returned, when relevant.
        log_dir: Override for the log directory (defaults to LOG_DIR).
    """
    directory = Path(log_dir) if log_dir else LOG_DIR

    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    log_entry = {
        "logged_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "method": method,
        "endpoint": endpoint,
        "status": status,
        "user_id": user_id,
    }
    if item_count is not None:
        log_entry["item_count"] = item_count

    try:
        directory.mkdir(parents=True, exist_ok=True)
        with open(directory / f"{today}.log", "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry, default=str) + "\n")
    except OSError as e:
        _error_logger.error("Failed to write API request log: %s", e)
