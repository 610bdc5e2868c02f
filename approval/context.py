"""Per tool call state owned by the approval controller."""

from dataclasses import dataclass, field
from typing import Optional

from common.models import ExecutionRecord, ExecutionStatus, ToolCallRequest, TransportErrorKind

from .synchronizer import PollingStatusSynchronizer


@dataclass(frozen=True)
class ApprovalFailure:
    """A classified, user-facing failure."""

    kind: TransportErrorKind
    title: str
    description: str


@dataclass
class ToolCallContext:
    """Everything the controller knows about one mounted tool call.

    ``record`` is the last authoritative state read from the store or
    confirmed by a command response. ``optimistic_status`` overlays it
    between a user action and the next authoritative answer.
    """

    request: ToolCallRequest
    chat_id: str
    message_id: int
    record: Optional[ExecutionRecord] = None
    optimistic_status: Optional[ExecutionStatus] = None
    session_result: Optional[str] = None  # Display text rendered in this session
    display_text: Optional[str] = None
    # Render markers attached to the owning message, shared with its view
    message_markers: dict[str, str] = field(default_factory=dict)
    last_failure: Optional[ApprovalFailure] = None
    synchronizer: Optional[PollingStatusSynchronizer] = None
    in_flight: bool = False

    @property
    def tool_call_id(self) -> str:
        return self.request.id

    @property
    def tool_name(self) -> str:
        return self.request.name

    @property
    def status(self) -> ExecutionStatus:
        """Status the view should show."""
        if self.optimistic_status is not None:
            return self.optimistic_status
        if self.record is not None:
            return self.record.status
        return ExecutionStatus.PENDING

    @property
    def authoritative_status(self) -> ExecutionStatus:
        return self.record.status if self.record else ExecutionStatus.PENDING

    def apply_optimistic(self, status: ExecutionStatus) -> None:
        self.optimistic_status = status
        self.last_failure = None

    def revert(self) -> None:
        """Drop the optimistic overlay, falling back to the authoritative record."""
        self.optimistic_status = None

    def reconcile(self, record: ExecutionRecord) -> None:
        """Adopt an authoritative record. Any optimistic overlay ends here."""
        self.record = record
        self.optimistic_status = None

    def confirm(self, status: ExecutionStatus) -> None:
        """Adopt a status confirmed by a command response."""
        if self.record is not None:
            self.record = self.record.model_copy(update={"status": status})
            self.optimistic_status = None
        else:
            self.optimistic_status = status
