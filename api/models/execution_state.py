"""Execution state API models."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from common.models import ExecutionStatus


class CreateExecutionStateRequest(BaseModel):
    """Request to create the record of a tool call shown to the user."""

    chat_id: str = Field(description="Chat UUID, or the unscoped sentinel")
    message_id: int = Field(ge=0, description="Message id derived from the tool call id")
    tool_call_id: str = Field(min_length=1, description="Tool call id from the sentinel marker")
    tool_name: str = Field(min_length=1, description="Tool name")
    tool_params: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class UpdateExecutionStateRequest(BaseModel):
    """Request to move a record forward or replace its parameters."""

    tool_call_id: str = Field(min_length=1, description="Tool call to update")
    status: Optional[ExecutionStatus] = Field(None, description="New lifecycle status")
    result: Optional[Any] = Field(None, description="Raw tool result")
    error_message: Optional[str] = Field(None, description="Failure description")
    tool_params: Optional[dict[str, Any]] = Field(None, description="Replacement parameters")
