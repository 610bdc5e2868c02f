"""Abstract interface for the tool execution state store."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from common.models import ExecutionRecord, ExecutionStatus


class ExecutionStateStore(ABC):
    """Durable keyed records of tool call lifecycle.

    Only the store performs authoritative status transitions. ``create`` is
    idempotent: a second call for the same tool call id returns the existing
    record instead of failing, which is expected when several tabs or
    remounts race to display the same request.
    """

    @abstractmethod
    async def get(self, tool_call_id: str) -> Optional[ExecutionRecord]:
        """Get the record for a tool call, or None if it does not exist."""
        pass

    @abstractmethod
    async def create(
        self,
        chat_id: str,
        message_id: int,
        tool_call_id: str,
        tool_name: str,
        tool_params: Optional[dict[str, Any]] = None,
    ) -> ExecutionRecord:
        """Create a pending record, or return the existing one."""
        pass

    @abstractmethod
    async def update(
        self,
        tool_call_id: str,
        status: ExecutionStatus,
        result: Optional[Any] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionRecord:
        """Apply a status transition.

        Raises:
            RecordNotFoundError: if no record exists for the tool call
            InvalidTransitionError: if the transition breaks the lifecycle rules
        """
        pass


class QueryableExecutionStateStore(ExecutionStateStore):
    """Server-side store with listing and maintenance operations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend."""
        pass

    @abstractmethod
    async def list_by_chat(self, chat_id: str) -> list[ExecutionRecord]:
        """Get all records for a chat ordered by creation time."""
        pass

    @abstractmethod
    async def list_by_message(self, chat_id: str, message_id: int) -> list[ExecutionRecord]:
        """Get all records for one message ordered by creation time."""
        pass

    @abstractmethod
    async def compare_and_set(
        self, tool_call_id: str, expected: ExecutionStatus, status: ExecutionStatus
    ) -> ExecutionRecord:
        """Move ``expected`` to ``status`` atomically.

        Raises:
            RecordNotFoundError: if no record exists for the tool call
            InvalidTransitionError: if the record is no longer in ``expected``
        """
        pass

    @abstractmethod
    async def update_params(
        self, tool_call_id: str, tool_params: dict[str, Any]
    ) -> ExecutionRecord:
        """Replace the stored tool parameters without touching the status."""
        pass

    @abstractmethod
    async def upsert(
        self,
        chat_id: str,
        message_id: int,
        tool_call_id: str,
        tool_name: str,
        tool_params: Optional[dict[str, Any]] = None,
        status: ExecutionStatus = ExecutionStatus.PENDING,
        result: Optional[Any] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionRecord:
        """Create the record if missing, then move it to ``status``."""
        pass
