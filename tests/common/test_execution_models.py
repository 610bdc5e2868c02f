"""Tests for the shared execution models."""

import pytest
from pydantic import ValidationError

from common.models import (
    UNSCOPED_CHAT_ID,
    ApprovalAction,
    ApprovalCommand,
    ApprovalCommandResponse,
    DebugInfo,
    ExecutionStatus,
    derive_message_id,
    is_valid_chat_id,
    scoped_chat_id,
)


@pytest.mark.unit
class TestMessageIds:
    def test_known_value(self) -> None:
        assert derive_message_id("abc") == 96354

    def test_stable_and_non_negative(self) -> None:
        tool_call_id = "toolu_01A09q90qw90lq917835lq9" * 4
        first = derive_message_id(tool_call_id)

        assert first == derive_message_id(tool_call_id)
        assert 0 <= first <= 2**31

    def test_empty(self) -> None:
        assert derive_message_id("") == 0


@pytest.mark.unit
class TestChatIds:
    def test_valid_uuid(self) -> None:
        chat_id = "3f2b8a1e-9c4d-4e5f-8a6b-7c8d9e0f1a2b"
        assert is_valid_chat_id(chat_id)
        assert scoped_chat_id(chat_id) == chat_id

    @pytest.mark.parametrize("chat_id", [None, "", "chat-1", "3f2b8a1e9c4d4e5f8a6b7c8d9e0f1a2b"])
    def test_invalid_falls_back(self, chat_id: str) -> None:
        assert scoped_chat_id(chat_id) == UNSCOPED_CHAT_ID


@pytest.mark.unit
class TestWireModels:
    def test_command_accepts_camel_case(self) -> None:
        command = ApprovalCommand.model_validate(
            {"toolCallId": "call_1", "action": "cancel", "sessionId": "s"}
        )

        assert command.action == ApprovalAction.CANCEL
        assert command.session_id == "s"

    def test_command_requires_tool_call_id(self) -> None:
        with pytest.raises(ValidationError):
            ApprovalCommand.model_validate({"action": "approve"})

    def test_response_wire_format(self) -> None:
        response = ApprovalCommandResponse(
            success=True, tool_result="ok", status=ExecutionStatus.COMPLETED
        )
        assert response.to_wire() == {"success": True, "toolResult": "ok", "status": "completed"}

    @pytest.mark.parametrize(
        "message,flag",
        [
            ("Request timeout after 30s", "is_timeout_error"),
            ("connect ETIMEDOUT 10.0.0.1", "is_timeout_error"),
            ("403 Forbidden", "is_auth_error"),
            ("Unauthorized", "is_auth_error"),
            ("400 Bad Request", "is_bad_request_error"),
            ("connect ECONNREFUSED 127.0.0.1:9000", "is_network_error"),
            ("getaddrinfo ENOTFOUND api.example.com", "is_network_error"),
        ],
    )
    def test_debug_info_from_error_message(self, message: str, flag: str) -> None:
        info = DebugInfo.from_error_message(message)
        assert getattr(info, flag) is True

    def test_debug_info_defaults(self) -> None:
        info = DebugInfo.from_error_message("something odd")

        assert not any(
            [info.is_timeout_error, info.is_auth_error, info.is_bad_request_error, info.is_network_error]
        )
        assert info.has_active_client and info.tool_found
