"""Exception hierarchy for the approval gate."""

from typing import Any, Optional

from common.models.enums import ExecutionStatus, TransportErrorKind


class ToolGateError(Exception):
    """Base class for all toolgate errors."""


class MarkerParseError(ToolGateError):
    """A sentinel marker or result payload could not be parsed."""


class RecordNotFoundError(ToolGateError):
    """No execution record exists for a tool call id."""

    def __init__(self, tool_call_id: str):
        super().__init__(f"No execution record for tool call {tool_call_id}")
        self.tool_call_id = tool_call_id


class InvalidTransitionError(ToolGateError):
    """The store refused a status transition."""

    def __init__(self, tool_call_id: str, current: ExecutionStatus, requested: ExecutionStatus):
        super().__init__(
            f"Illegal transition for {tool_call_id}: {current.value} -> {requested.value}"
        )
        self.tool_call_id = tool_call_id
        self.current = current
        self.requested = requested


class ConflictError(ToolGateError):
    """The tool call was already processed by another actor."""

    def __init__(self, message: str, status: Optional[ExecutionStatus] = None):
        super().__init__(message)
        self.status = status


class CorruptionError(ToolGateError):
    """Result text carries a serialized-object artifact."""


class TransportError(ToolGateError):
    """A network round trip to the approval service failed."""

    def __init__(
        self,
        kind: TransportErrorKind,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.response = response
