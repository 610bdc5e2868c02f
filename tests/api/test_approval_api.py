"""Integration tests for the approval command endpoint using FastAPI TestClient."""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from common.models import ApprovalCommandResponse, ExecutionStatus
from tools.registry import ToolExecutor

# ============================================================================
# HELPERS
# ============================================================================


def _command(client: TestClient, tool_call_id: str, action: str, **extra: Any) -> Any:
    return client.post("/api/chat/approve", json={"toolCallId": tool_call_id, "action": action, **extra})


def _state(client: TestClient, tool_call_id: str) -> dict[str, Any]:
    response = client.get("/api/tool-execution-state", params={"tool_call_id": tool_call_id})
    assert response.status_code == 200
    return response.json()  # type: ignore[no-any-return]


# ============================================================================
# APPROVE
# ============================================================================


@pytest.mark.integration
class TestApprove:
    def test_approve_runs_tool(self, client: TestClient, create_record: Any) -> None:
        create_record("call_1", to="bob@example.com")

        response = _command(client, "call_1", "approve", sessionId="session-1")

        assert response.status_code == 200
        body = ApprovalCommandResponse.model_validate(response.json())
        assert body.success
        assert body.status == ExecutionStatus.COMPLETED
        assert body.tool_result == {"content": [{"type": "text", "text": "Email sent to bob@example.com"}]}

        state = _state(client, "call_1")
        assert state["status"] == "completed"
        assert state["result"] == body.tool_result

    def test_param_overrides_are_persisted(self, client: TestClient, create_record: Any) -> None:
        create_record("call_2", to="bob@example.com", subject="Hi")

        response = _command(client, "call_2", "approve", params={"to": "carol@example.com"})

        assert response.json()["toolResult"]["content"][0]["text"] == "Email sent to carol@example.com"
        assert _state(client, "call_2")["tool_params"] == {"to": "carol@example.com", "subject": "Hi"}

    def test_second_approve_is_rejected(self, client: TestClient, create_record: Any) -> None:
        create_record("call_3")
        _command(client, "call_3", "approve")

        response = _command(client, "call_3", "approve")

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "Tool call already processed"
        assert body["status"] == "completed"

    def test_tool_failure_is_classified(self, client: TestClient, create_record: Any) -> None:
        create_record("call_4", tool_name="drive_delete_file")

        response = _command(client, "call_4", "approve")

        assert response.status_code == 500
        body = ApprovalCommandResponse.model_validate(response.json())
        assert body.error == "Tool execution failed"
        assert body.details is not None and "403" in body.details
        assert body.debug_info is not None and body.debug_info.is_auth_error
        assert body.status == ExecutionStatus.ERROR

        state = _state(client, "call_4")
        assert state["status"] == "error"
        assert "403" in state["error_message"]

    def test_unregistered_tool(self, client: TestClient, create_record: Any) -> None:
        create_record("call_5", tool_name="slack_post_message")

        response = _command(client, "call_5", "approve")

        assert response.status_code == 500
        assert response.json()["debugInfo"]["toolFound"] is False

    def test_inactive_tool_client(self, client: TestClient, create_record: Any, executor: ToolExecutor) -> None:
        executor.set_active(False)
        create_record("call_6")

        response = _command(client, "call_6", "approve")

        assert response.status_code == 500
        assert response.json()["debugInfo"]["hasActiveClient"] is False


# ============================================================================
# CANCEL
# ============================================================================


@pytest.mark.integration
class TestCancel:
    def test_cancel_pending(self, client: TestClient, create_record: Any) -> None:
        create_record("call_7")

        response = _command(client, "call_7", "cancel")

        assert response.status_code == 200
        assert response.json()["cancelled"] is True
        assert response.json()["status"] == "cancelled"
        assert _state(client, "call_7")["status"] == "cancelled"

    def test_approve_after_cancel_is_rejected(self, client: TestClient, create_record: Any) -> None:
        create_record("call_8")
        _command(client, "call_8", "cancel")

        response = _command(client, "call_8", "approve")

        assert response.status_code == 409
        assert response.json()["status"] == "cancelled"
        assert _state(client, "call_8")["result"] is None

    def test_cancel_after_completion_is_rejected(self, client: TestClient, create_record: Any) -> None:
        create_record("call_9")
        _command(client, "call_9", "approve")

        response = _command(client, "call_9", "cancel")

        assert response.status_code == 409
        assert ApprovalCommandResponse.model_validate(response.json()).is_already_processed
        assert _state(client, "call_9")["status"] == "completed"


# ============================================================================
# VALIDATION
# ============================================================================


@pytest.mark.integration
class TestValidation:
    @pytest.mark.parametrize(
        "payload",
        [
            {"action": "approve"},
            {"toolCallId": "", "action": "approve"},
            {"toolCallId": "call_x", "action": "maybe"},
        ],
    )
    def test_malformed_command(self, client: TestClient, payload: dict[str, Any]) -> None:
        response = client.post("/api/chat/approve", json=payload)

        assert response.status_code == 400
        assert response.json()["debugInfo"]["isBadRequestError"] is True

    def test_missing_body(self, client: TestClient) -> None:
        assert client.post("/api/chat/approve").status_code == 400

    def test_unknown_tool_call(self, client: TestClient) -> None:
        response = _command(client, "call_unknown", "approve")

        assert response.status_code == 404
        assert response.json()["debugInfo"]["toolFound"] is False
