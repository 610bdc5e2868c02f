"""Fixtures for API tests using FastAPI's in-process TestClient."""

from pathlib import Path
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from db.engine import DatabaseEngine
from tools.registry import ToolExecutor


async def _send_email(params: dict[str, Any]) -> str:
    return f"Email sent to {params.get('to', 'nobody')}"


async def _find_events(params: dict[str, Any]) -> dict[str, Any]:
    return {"results": [{"kind": "calendar#event", "summary": "Standup", "start": {"date": "2025-03-04"}}]}


async def _forbidden(params: dict[str, Any]) -> Any:
    raise RuntimeError("Request failed with status 403 Forbidden")


@pytest.fixture
def executor() -> ToolExecutor:
    """Executor with a few fake side-effecting tools."""
    tool_executor = ToolExecutor(timeout_seconds=5)
    tool_executor.register_tool("gmail_send_email", _send_email)
    tool_executor.register_tool("calendar_find_event", _find_events)
    tool_executor.register_tool("drive_delete_file", _forbidden)
    return tool_executor


@pytest.fixture
def client(temp_db_path: str, executor: ToolExecutor) -> Generator[TestClient, None, None]:
    """TestClient running the app lifespan against a temporary database."""
    app = create_app(db_engine=DatabaseEngine(Path(temp_db_path)), executor=executor)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def create_record(client: TestClient, chat_id: str) -> Any:
    """Create an execution record through the API and return its JSON."""

    def _create(tool_call_id: str, tool_name: str = "gmail_send_email", **params: Any) -> dict[str, Any]:
        response = client.post(
            "/api/tool-execution-state",
            json={
                "chat_id": chat_id,
                "message_id": 1,
                "tool_call_id": tool_call_id,
                "tool_name": tool_name,
                "tool_params": params,
            },
        )
        assert response.status_code == 200, response.text
        return response.json()  # type: ignore[no-any-return]

    return _create
