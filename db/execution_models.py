"""SQLAlchemy database models for tool execution state."""

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, func

from .base import Base


class ToolExecutionStateModel(Base):
    """SQLAlchemy model for tool call execution state.

    One row per tool call id, tracking the approval lifecycle:
    pending → approved → running → completed | error, or cancelled.
    """

    __tablename__ = "tool_execution_states"

    # Primary identification
    id = Column(String, primary_key=True)  # UUID
    tool_call_id = Column(String, nullable=False)  # Opaque id from the sentinel marker

    # Conversation scope
    chat_id = Column(String, nullable=False)  # Chat UUID or the unscoped sentinel
    message_id = Column(Integer, nullable=False)  # Derived from tool_call_id

    # Tool details
    tool_name = Column(String, nullable=False)
    tool_params = Column(JSON, nullable=True)

    # Lifecycle
    status = Column(String, nullable=False, default="pending")
    tool_result = Column(JSON, nullable=True)  # Raw tool output
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        # Exactly one record per tool call
        Index("idx_tool_exec_tool_call_unique", "tool_call_id", unique=True),
        Index("idx_tool_exec_chat", "chat_id"),
        Index("idx_tool_exec_chat_message", "chat_id", "message_id"),
        Index("idx_tool_exec_status", "status"),
    )


class ToolResultCacheModel(Base):
    """SQLAlchemy model for the durable rendered-result cache.

    Holds the exact text shown to the user for a tool call so it can be
    restored after a reload.
    """

    __tablename__ = "tool_result_cache"

    chat_id = Column(String, primary_key=True)
    tool_call_id = Column(String, primary_key=True)
    display_text = Column(Text, nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())
