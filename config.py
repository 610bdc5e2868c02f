"""Project configuration and paths."""

import os
from pathlib import Path
from typing import Any

# Project root is where this config.py file is located
PROJECT_ROOT = Path(__file__).parent

# Database configuration
# Allow overriding via environment variable
if "TOOLGATE_DB_PATH" in os.environ:
    DB_PATH = Path(os.environ["TOOLGATE_DB_PATH"])
    DB_DIR = DB_PATH.parent
else:
    DB_DIR = PROJECT_ROOT / "db"
    DB_PATH = DB_DIR / "toolgate.db"

# Database URL for SQLAlchemy
DATABASE_URL = f"sqlite:///{DB_PATH}"

# Base URL the client core uses to reach the approval service
API_BASE_URL = os.getenv("TOOLGATE_API_URL", "http://127.0.0.1:8080")

# Approval gate configuration
APPROVAL_CONFIG: dict[str, Any] = {
    # Status polling cadence after a command is accepted
    "poll_interval_seconds": float(os.getenv("APPROVAL_POLL_INTERVAL", "1.0")),
    # Polling stops after this long even without a terminal status
    "poll_max_duration_seconds": float(os.getenv("APPROVAL_POLL_MAX_DURATION", "60.0")),
    # Per-request network timeout for approval and state calls
    "request_timeout_seconds": float(os.getenv("APPROVAL_REQUEST_TIMEOUT", "30.0")),
    # Chat id used when a tool call is shown outside a persisted conversation
    "unscoped_chat_id": "00000000-0000-0000-0000-000000000000",
    # Read-after-write attempts when a concurrent create wins the race
    "create_retry_attempts": int(os.getenv("APPROVAL_CREATE_RETRIES", "2")),
}

# Tool name fragments that identify a result family
RESULT_FAMILY_CONFIG: dict[str, list[str]] = {
    "calendar": ["calendar", "find_event", "gcal"],
    "mail": ["gmail", "email", "mail_"],
}
