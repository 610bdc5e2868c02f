"""Pytest configuration and fixtures for toolgate tests."""

import json
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Callable

import pytest
import pytest_asyncio
from dotenv import load_dotenv

from common.models import ExecutionRecord, ExecutionStatus, derive_message_id
from db.engine import DatabaseEngine
from store import SQLiteExecutionStateStore

# Load environment variables from .env file
load_dotenv()


@pytest.fixture
def chat_id() -> str:
    """Generate a valid chat UUID for testing."""
    return str(uuid.uuid4())


@pytest.fixture
def tool_call_id() -> str:
    """Generate a unique tool call id for testing."""
    return f"call_{uuid.uuid4().hex[:12]}"


@pytest.fixture
def temp_db_path() -> Any:  # Generator type
    """Create a temporary database file for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name
    yield db_path
    # Cleanup, including WAL side files
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            os.unlink(path)


@pytest_asyncio.fixture
async def db_engine(temp_db_path: str) -> Any:  # Generator type
    """Create a DatabaseEngine instance for testing."""
    engine = DatabaseEngine(Path(temp_db_path))
    await engine.initialize()
    yield engine
    await engine.close()


@pytest_asyncio.fixture
async def store(db_engine: DatabaseEngine) -> SQLiteExecutionStateStore:
    """Create an initialized SQLite execution state store."""
    sqlite_store = SQLiteExecutionStateStore(db_engine)
    await sqlite_store.initialize()
    return sqlite_store


def _make_record(
    tool_call_id: str = "call_abc123",
    status: ExecutionStatus = ExecutionStatus.PENDING,
    tool_name: str = "gmail_send_email",
    chat_id: str = "00000000-0000-0000-0000-000000000000",
    **kwargs: Any,
) -> ExecutionRecord:
    """Build an ExecutionRecord with sensible defaults."""
    return ExecutionRecord(
        tool_call_id=tool_call_id,
        chat_id=chat_id,
        message_id=derive_message_id(tool_call_id),
        tool_name=tool_name,
        status=status,
        **kwargs,
    )


@pytest.fixture
def calendar_envelope() -> dict[str, Any]:
    """A calendar tool result with its events JSON-encoded in a text part."""
    events = {
        "results": [
            {
                "kind": "calendar#event",
                "summary": "Team sync",
                "start": {"dateTime": "2025-03-04T10:00:00", "time": "10:00"},
                "end": {"dateTime": "2025-03-04T10:30:00"},
                "location": "Room 4",
            },
            {
                "kind": "calendar#event",
                "summary": "Offsite",
                "start": {"date": "2025-03-07"},
                "end": {"date": "2025-03-08"},
            },
        ],
        "execution": {"status": "SUCCESS"},
    }
    return {"content": [{"type": "text", "text": json.dumps(events)}]}


@pytest.fixture
def record_factory() -> Callable[..., ExecutionRecord]:
    """Factory for ExecutionRecord instances."""
    return _make_record
