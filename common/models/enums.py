"""Enumerations used across the toolgate system."""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Lifecycle status of a tool call execution record."""

    PENDING = "pending"  # Waiting for the user to approve or cancel
    APPROVED = "approved"  # User approved, execution not started yet
    RUNNING = "running"  # Tool is executing
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"  # Cancelled by the user before execution

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is expected from this status."""
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Progress rank used to reject regressions."""
        return _STATUS_RANK[self]


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.ERROR, ExecutionStatus.CANCELLED}
)

# Statuses from which a cancel may still be applied
CANCELLABLE_STATUSES = frozenset({ExecutionStatus.PENDING, ExecutionStatus.APPROVED})

_STATUS_RANK = {
    ExecutionStatus.PENDING: 0,
    ExecutionStatus.APPROVED: 1,
    ExecutionStatus.RUNNING: 2,
    ExecutionStatus.COMPLETED: 3,
    ExecutionStatus.ERROR: 3,
    ExecutionStatus.CANCELLED: 3,
}


def is_valid_transition(current: ExecutionStatus, new: ExecutionStatus) -> bool:
    """Check a store transition against the lifecycle rules.

    Status only moves forward; terminal states are final and ``cancelled``
    may only be entered from ``pending`` or ``approved``.
    """
    if current == new:
        return not current.is_terminal
    if current.is_terminal:
        return False
    if new == ExecutionStatus.CANCELLED:
        return current in CANCELLABLE_STATUSES
    return new.rank > current.rank


class ApprovalAction(str, Enum):
    """User intent sent with an approval command."""

    APPROVE = "approve"
    CANCEL = "cancel"


class TransportErrorKind(str, Enum):
    """Classification of a failed approval command."""

    TIMEOUT = "timeout"
    AUTH = "auth"
    BAD_REQUEST = "bad-request"
    NETWORK_UNREACHABLE = "network-unreachable"
    NO_ACTIVE_CLIENT = "no-active-client"
    TOOL_NOT_FOUND = "tool-not-found"
    UNKNOWN = "unknown"


class ResultFamily(str, Enum):
    """Provider family a raw tool result belongs to."""

    CALENDAR = "calendar"
    MAIL = "mail"
    GENERIC = "generic"
    OPAQUE = "opaque"  # Shape could not be recognized
