"""Integration tests for the execution state endpoints using FastAPI TestClient."""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from common.models import UNSCOPED_CHAT_ID, ExecutionRecord, ExecutionStatus


@pytest.mark.integration
class TestCreateAndRead:
    def test_create_returns_pending_record(self, create_record: Any, chat_id: str) -> None:
        record = ExecutionRecord.model_validate(create_record("call_a", to="x@example.com"))

        assert record.status == ExecutionStatus.PENDING
        assert record.chat_id == chat_id
        assert record.tool_params == {"to": "x@example.com"}

    def test_create_is_idempotent(self, create_record: Any) -> None:
        first = create_record("call_b")
        second = create_record("call_b", to="someone-else@example.com")

        assert second == first

    def test_invalid_chat_id_is_unscoped(self, client: TestClient) -> None:
        response = client.post(
            "/api/tool-execution-state",
            json={"chat_id": "chat-42", "message_id": 3, "tool_call_id": "call_c", "tool_name": "gmail_send_email"},
        )

        assert response.status_code == 200
        assert response.json()["chat_id"] == UNSCOPED_CHAT_ID

    def test_create_rejects_missing_fields(self, client: TestClient) -> None:
        response = client.post("/api/tool-execution-state", json={"chat_id": "x", "message_id": 1})
        assert response.status_code == 422

    def test_get_missing(self, client: TestClient) -> None:
        response = client.get("/api/tool-execution-state", params={"tool_call_id": "call_missing"})
        assert response.status_code == 404

    def test_list_by_chat_and_message(self, client: TestClient, create_record: Any, chat_id: str) -> None:
        create_record("call_d")
        create_record("call_e")

        listed = client.get("/api/tool-execution-state", params={"chat_id": chat_id}).json()
        assert [record["tool_call_id"] for record in listed] == ["call_d", "call_e"]

        other_message = client.get(
            "/api/tool-execution-state", params={"chat_id": chat_id, "message_id": 99}
        ).json()
        assert other_message == []

    def test_get_requires_a_key(self, client: TestClient) -> None:
        assert client.get("/api/tool-execution-state").status_code == 400


@pytest.mark.integration
class TestUpdate:
    def test_forward_transition(self, client: TestClient, create_record: Any) -> None:
        create_record("call_f")

        response = client.put(
            "/api/tool-execution-state", json={"tool_call_id": "call_f", "status": "approved"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"

    def test_backward_transition_conflicts(self, client: TestClient, create_record: Any) -> None:
        create_record("call_g")
        client.put("/api/tool-execution-state", json={"tool_call_id": "call_g", "status": "cancelled"})

        response = client.put(
            "/api/tool-execution-state", json={"tool_call_id": "call_g", "status": "running"}
        )

        assert response.status_code == 409

    def test_params_only(self, client: TestClient, create_record: Any) -> None:
        create_record("call_h", query="from:ann")

        response = client.put(
            "/api/tool-execution-state",
            json={"tool_call_id": "call_h", "tool_params": {"query": "from:bob"}},
        )

        assert response.status_code == 200
        assert response.json()["tool_params"] == {"query": "from:bob"}
        assert response.json()["status"] == "pending"

    def test_update_missing(self, client: TestClient) -> None:
        response = client.put(
            "/api/tool-execution-state", json={"tool_call_id": "call_missing", "status": "approved"}
        )
        assert response.status_code == 404

    def test_nothing_to_update(self, client: TestClient, create_record: Any) -> None:
        create_record("call_i")
        response = client.put("/api/tool-execution-state", json={"tool_call_id": "call_i"})
        assert response.status_code == 400


@pytest.mark.integration
class TestHealth:
    def test_health_reports_components(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        components = response.json()["components"]
        assert components["database"]["status"] == "healthy"
        assert components["tools"] == {"status": "healthy", "count": 3}

    def test_root(self, client: TestClient) -> None:
        assert client.get("/").json()["status"] == "running"
