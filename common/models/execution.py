"""Pydantic models for tool call approval and execution state."""

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import APPROVAL_CONFIG

from .enums import ApprovalAction, ExecutionStatus

UNSCOPED_CHAT_ID: str = APPROVAL_CONFIG["unscoped_chat_id"]

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_valid_chat_id(chat_id: Optional[str]) -> bool:
    """Check that a chat id has the UUID format the store expects."""
    return bool(chat_id) and bool(_UUID_PATTERN.match(chat_id or ""))


def scoped_chat_id(chat_id: Optional[str]) -> str:
    """Return the chat id, or the unscoped sentinel when it is missing or invalid."""
    if chat_id and is_valid_chat_id(chat_id):
        return chat_id
    return UNSCOPED_CHAT_ID


def derive_message_id(tool_call_id: str) -> int:
    """Derive a stable message id from a tool call id.

    Uses the classic 31-multiplier string hash folded to a signed 32-bit
    integer, so every mount of the same tool call lands on the same record.
    """
    value = 0
    for char in tool_call_id:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


class ToolCallRequest(BaseModel):
    """A tool call extracted from streamed assistant text."""

    id: str = Field(..., description="Opaque tool call identifier")
    name: str = Field(..., description="Tool name with any sentinel suffix stripped")
    args: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")
    synthesized: bool = Field(
        False, description="True when the id was generated by a fallback pattern"
    )


class ExecutionRecord(BaseModel):
    """Durable record of one tool call's approval and execution lifecycle."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    tool_call_id: str
    chat_id: str
    message_id: int
    tool_name: str
    tool_params: dict[str, Any] = Field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.PENDING
    result: Optional[Any] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ApprovalCommand(BaseModel):
    """Approve or cancel command for a pending tool call."""

    model_config = ConfigDict(populate_by_name=True)

    tool_call_id: str = Field(..., alias="toolCallId", min_length=1)
    action: ApprovalAction
    session_id: Optional[str] = Field(None, alias="sessionId")
    params: dict[str, Any] = Field(
        default_factory=dict, description="Optional argument overrides supplied by the user"
    )


class DebugInfo(BaseModel):
    """Failure flags returned alongside a failed approval command."""

    model_config = ConfigDict(populate_by_name=True)

    is_timeout_error: bool = Field(False, alias="isTimeoutError")
    is_auth_error: bool = Field(False, alias="isAuthError")
    is_bad_request_error: bool = Field(False, alias="isBadRequestError")
    is_network_error: bool = Field(False, alias="isNetworkError")
    has_active_client: bool = Field(True, alias="hasActiveClient")
    tool_found: bool = Field(True, alias="toolFound")

    @classmethod
    def from_error_message(
        cls, message: str, has_active_client: bool = True, tool_found: bool = True
    ) -> "DebugInfo":
        """Build flags by matching well-known substrings in an error message."""
        lowered = message.lower()
        return cls(
            is_timeout_error="timeout" in lowered or "etimedout" in lowered,
            is_auth_error="403" in lowered or "unauthorized" in lowered,
            is_bad_request_error="400" in lowered or "bad request" in lowered,
            is_network_error="econnrefused" in lowered or "enotfound" in lowered,
            has_active_client=has_active_client,
            tool_found=tool_found,
        )


class ApprovalCommandResponse(BaseModel):
    """Response body of the approval command endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    tool_result: Optional[Any] = Field(None, alias="toolResult")
    tool_call_id: Optional[str] = Field(None, alias="toolCallId")
    tool_name: Optional[str] = Field(None, alias="toolName")
    cancelled: Optional[bool] = None
    status: Optional[ExecutionStatus] = None
    error: Optional[str] = None
    details: Optional[str] = None
    debug_info: Optional[DebugInfo] = Field(None, alias="debugInfo")

    @property
    def is_already_processed(self) -> bool:
        return bool(self.error) and "already processed" in (self.error or "")

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
