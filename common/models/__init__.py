"""Pydantic models for toolgate.

This package contains the data models shared by the client core,
the execution state store and the HTTP API.
"""
# ruff: noqa: F403, F405

# Import all models to make them available at package level
from .enums import *
from .execution import *

__all__ = [
    # Enums
    "ExecutionStatus",
    "ApprovalAction",
    "TransportErrorKind",
    "ResultFamily",
    "TERMINAL_STATUSES",
    "CANCELLABLE_STATUSES",
    "is_valid_transition",
    # Execution models
    "ToolCallRequest",
    "ExecutionRecord",
    "ApprovalCommand",
    "ApprovalCommandResponse",
    "DebugInfo",
    "UNSCOPED_CHAT_ID",
    "derive_message_id",
    "is_valid_chat_id",
    "scoped_chat_id",
]
