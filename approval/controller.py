"""Approval and cancellation of tool calls that require explicit user consent."""

import logging
from typing import Any, Callable, Optional, Protocol

from common.errors import ConflictError, ToolGateError, TransportError
from common.models import (
    CANCELLABLE_STATUSES,
    ApprovalAction,
    ApprovalCommand,
    ApprovalCommandResponse,
    ExecutionRecord,
    ExecutionStatus,
    ToolCallRequest,
    TransportErrorKind,
    derive_message_id,
    scoped_chat_id,
)
from config import APPROVAL_CONFIG
from store.api import ExecutionStateStore
from telemetry import get_tracer

from .context import ApprovalFailure, ToolCallContext
from .marker_parser import display_tool_name
from .recovery import RecoveryChain
from .result_formatter import FormattedResult, format_tool_result
from .synchronizer import PollingStatusSynchronizer

logger = logging.getLogger(__name__)


class CommandTransport(Protocol):
    async def send_command(self, command: ApprovalCommand) -> ApprovalCommandResponse: ...


class Notifier(Protocol):
    """Surface for user-visible notifications."""

    def notify(self, title: str, description: str) -> None: ...


class LoggingNotifier:
    """Notifier that writes notifications to the log."""

    def notify(self, title: str, description: str) -> None:
        logger.warning(f"🔔 {title}: {description}")


_FAILURE_MESSAGES: dict[TransportErrorKind, tuple[str, str]] = {
    TransportErrorKind.TIMEOUT: (
        "Connection timeout",
        "{tool} timed out. This may be due to slow network or service issues. Please try again.",
    ),
    TransportErrorKind.AUTH: (
        "Authentication error",
        "{tool} authentication failed. Please check your permissions and try again.",
    ),
    TransportErrorKind.BAD_REQUEST: (
        "Invalid request",
        "{tool} received invalid parameters. Please check your input and try again.",
    ),
    TransportErrorKind.NETWORK_UNREACHABLE: (
        "Network error",
        "Cannot connect to {tool} service. Please check your internet connection and try again.",
    ),
    TransportErrorKind.NO_ACTIVE_CLIENT: (
        "Service unavailable",
        "{tool} service is currently unavailable. Please try again later.",
    ),
    TransportErrorKind.TOOL_NOT_FOUND: (
        "Tool not found",
        "{tool} is not available. Please contact support if this persists.",
    ),
}


def classify_failure(
    tool_name: str,
    kind: TransportErrorKind = TransportErrorKind.UNKNOWN,
    response: Optional[ApprovalCommandResponse] = None,
) -> ApprovalFailure:
    """Turn a failed approve command into a titled, user-facing message.

    ``debugInfo`` flags from the server take precedence over the kind the
    transport derived from the HTTP status.
    """
    info = response.debug_info if response else None
    if info is not None:
        if info.is_timeout_error:
            kind = TransportErrorKind.TIMEOUT
        elif info.is_auth_error:
            kind = TransportErrorKind.AUTH
        elif info.is_bad_request_error:
            kind = TransportErrorKind.BAD_REQUEST
        elif info.is_network_error:
            kind = TransportErrorKind.NETWORK_UNREACHABLE
        elif not info.has_active_client:
            kind = TransportErrorKind.NO_ACTIVE_CLIENT
        elif not info.tool_found:
            kind = TransportErrorKind.TOOL_NOT_FOUND

    label = (response.tool_name if response and response.tool_name else None) or tool_name
    label = display_tool_name(label) or "Tool"

    if kind in _FAILURE_MESSAGES:
        title, template = _FAILURE_MESSAGES[kind]
        return ApprovalFailure(kind, title, template.format(tool=label))

    error = response.error if response else None
    return ApprovalFailure(
        TransportErrorKind.UNKNOWN,
        "Tool approval failed",
        error or "Could not approve tool. Please try again.",
    )


SynchronizerFactory = Callable[[], PollingStatusSynchronizer]


class ApprovalController:
    """Drives the approval lifecycle of mounted tool calls.

    Each mounted tool call gets its own ``ToolCallContext``. The store is
    the only authority on status; the controller overlays optimistic
    statuses between a user action and the next authoritative answer.
    """

    def __init__(
        self,
        store: ExecutionStateStore,
        transport: CommandTransport,
        recovery: RecoveryChain,
        notifier: Optional[Notifier] = None,
        synchronizer_factory: Optional[SynchronizerFactory] = None,
        formatter: Callable[..., FormattedResult] = format_tool_result,
    ):
        self.store = store
        self.transport = transport
        self.recovery = recovery
        self.notifier = notifier or LoggingNotifier()
        self.synchronizer_factory = synchronizer_factory or (
            lambda: PollingStatusSynchronizer(store)
        )
        self.formatter = formatter
        self.contexts: dict[str, ToolCallContext] = {}
        self.tracer = get_tracer(__name__)

    def get_context(self, tool_call_id: str) -> ToolCallContext:
        context = self.contexts.get(tool_call_id)
        if context is None:
            raise KeyError(f"Tool call {tool_call_id} is not mounted")
        return context

    # ------------------------------------------------------------------
    # Mounting
    # ------------------------------------------------------------------

    async def mount(
        self,
        request: ToolCallRequest,
        chat_id: Optional[str] = None,
        message_markers: Optional[dict[str, str]] = None,
    ) -> ToolCallContext:
        """Show a tool call, creating its execution record on first display.

        Mounting the same tool call again returns the existing context.
        """
        existing = self.contexts.get(request.id)
        if existing:
            return existing

        context = ToolCallContext(
            request=request,
            chat_id=scoped_chat_id(chat_id),
            message_id=derive_message_id(request.id),
            message_markers=message_markers if message_markers is not None else {},
        )
        self.contexts[request.id] = context

        record = await self._create_record(context)
        if record is None:
            logger.warning(f"Showing {request.id} as pending without a stored record")
            return context

        context.reconcile(record)
        if record.status in (ExecutionStatus.APPROVED, ExecutionStatus.RUNNING):
            logger.info(f"🔄 Resuming status polling for {request.id} ({record.status.value})")
            self._start_polling(context)
        elif record.is_terminal:
            await self.recovery.recover(context, record)
        return context

    async def _create_record(self, context: ToolCallContext) -> Optional[ExecutionRecord]:
        try:
            return await self.store.create(
                context.chat_id,
                context.message_id,
                context.tool_call_id,
                context.tool_name,
                context.request.args,
            )
        except ToolGateError as e:
            logger.info(f"Create for {context.tool_call_id} failed ({e}), reading back")

        for attempt in range(APPROVAL_CONFIG["create_retry_attempts"]):
            try:
                record = await self.store.get(context.tool_call_id)
            except ToolGateError as e:
                logger.warning(f"Read-after-write {attempt + 1} for {context.tool_call_id} failed: {e}")
                continue
            if record:
                return record
        return None

    async def unmount(self, tool_call_id: str) -> None:
        """Tear down the view for a tool call, stopping its poller."""
        context = self.contexts.pop(tool_call_id, None)
        if context and context.synchronizer:
            await context.synchronizer.close()

    async def close(self) -> None:
        for tool_call_id in list(self.contexts):
            await self.unmount(tool_call_id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def approve(
        self,
        tool_call_id: str,
        session_id: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> ToolCallContext:
        """Approve a pending tool call and start tracking its execution."""
        context = self.get_context(tool_call_id)
        if context.in_flight or context.status != ExecutionStatus.PENDING:
            logger.info(f"Ignoring approve for {tool_call_id} in status {context.status.value}")
            return context

        context.apply_optimistic(ExecutionStatus.APPROVED)
        context.in_flight = True
        command = ApprovalCommand(
            tool_call_id=tool_call_id,
            action=ApprovalAction.APPROVE,
            session_id=session_id,
            params=params or {},
        )

        with self.tracer.start_as_current_span("approval.approve") as span:
            span.set_attribute("tool.name", context.tool_name)
            span.set_attribute("approval.tool_call_id", tool_call_id)
            try:
                response = await self.transport.send_command(command)
            except ConflictError as e:
                logger.info(f"Approve for {tool_call_id} conflicted: {e}")
                context.revert()
                await self._settle(context)
                return context
            except TransportError as e:
                span.record_exception(e)
                response = e.response if isinstance(e.response, ApprovalCommandResponse) else None
                await self._fail(context, classify_failure(context.tool_name, e.kind, response))
                return context
            finally:
                context.in_flight = False

            failure = self._validate_approval(context, response)
            if failure:
                span.set_attribute("approval.error", failure.title)
                await self._fail(context, failure)
                return context

            span.set_attribute("approval.success", True)
            logger.info(f"✅ Approved {tool_call_id}")

            confirmed = response.status or ExecutionStatus.APPROVED
            context.confirm(confirmed)
            if response.tool_result is not None:
                formatted = self.formatter(response.tool_result, context.tool_name)
                await self.recovery.remember(context, formatted.markdown)
            if not confirmed.is_terminal:
                self._start_polling(context)
        return context

    def _validate_approval(
        self, context: ToolCallContext, response: Any
    ) -> Optional[ApprovalFailure]:
        if not isinstance(response, ApprovalCommandResponse):
            return ApprovalFailure(
                TransportErrorKind.UNKNOWN,
                "Invalid response",
                "Received invalid response from server. Please try again.",
            )
        if not response.success:
            return ApprovalFailure(
                TransportErrorKind.UNKNOWN,
                "Tool execution failed",
                response.error or "Tool execution was not successful. Please try again.",
            )
        if response.tool_result is None:
            return ApprovalFailure(
                TransportErrorKind.UNKNOWN,
                "Empty response",
                "Tool executed but returned no result. Please try again.",
            )
        return None

    async def cancel(self, tool_call_id: str, session_id: Optional[str] = None) -> ToolCallContext:
        """Cancel a tool call that has not started running."""
        context = self.get_context(tool_call_id)
        if context.in_flight and context.status == ExecutionStatus.APPROVED:
            # The approve already left; its response settles the call
            logger.info(f"Cancel for {tool_call_id} not sent, approval in progress")
            self.notifier.notify(
                "Cancel not sent",
                "This tool call was already approved and is being processed. "
                "Its result will appear when it finishes.",
            )
            return context
        if context.in_flight or context.status not in CANCELLABLE_STATUSES:
            logger.info(f"Ignoring cancel for {tool_call_id} in status {context.status.value}")
            return context

        context.apply_optimistic(ExecutionStatus.CANCELLED)
        context.in_flight = True
        command = ApprovalCommand(
            tool_call_id=tool_call_id, action=ApprovalAction.CANCEL, session_id=session_id
        )

        with self.tracer.start_as_current_span("approval.cancel") as span:
            span.set_attribute("tool.name", context.tool_name)
            span.set_attribute("approval.tool_call_id", tool_call_id)
            try:
                response = await self.transport.send_command(command)
            except ConflictError as e:
                # Another actor already resolved this call
                logger.info(f"Cancel for {tool_call_id} already processed: {e}")
                await self._settle(context)
                return context
            except TransportError as e:
                span.record_exception(e)
                if e.status_code is None:
                    failure = ApprovalFailure(
                        e.kind,
                        "Cancellation error",
                        "Could not send cancellation to server. Please try again.",
                    )
                else:
                    failure = ApprovalFailure(
                        e.kind,
                        "Cancellation failed",
                        str(e) or "Could not cancel tool. Please try again.",
                    )
                await self._fail(context, failure)
                return context
            finally:
                context.in_flight = False

            if response.is_already_processed:
                logger.info(f"Cancel for {tool_call_id} already processed")
                await self._settle(context)
                return context
            if not response.success:
                await self._fail(
                    context,
                    ApprovalFailure(
                        TransportErrorKind.UNKNOWN,
                        "Cancellation failed",
                        response.error or "Could not cancel tool. Please try again.",
                    ),
                )
                return context

            logger.info(f"🚫 Cancelled {tool_call_id}")
            context.confirm(response.status or ExecutionStatus.CANCELLED)
        return context

    async def _fail(self, context: ToolCallContext, failure: ApprovalFailure) -> None:
        logger.error(f"❌ {failure.title} for {context.tool_call_id}: {failure.description}")
        context.revert()
        context.last_failure = failure
        self.notifier.notify(failure.title, failure.description)
        await self._settle(context)

    async def _settle(self, context: ToolCallContext) -> None:
        """Read the store once and adopt its state."""
        try:
            record = await self.store.get(context.tool_call_id)
        except ToolGateError as e:
            logger.warning(f"Could not refresh {context.tool_call_id} from store: {e}")
            return
        if record is None:
            return
        context.reconcile(record)
        if record.is_terminal:
            await self.recovery.recover(context, record)

    # ------------------------------------------------------------------
    # Status tracking
    # ------------------------------------------------------------------

    def _start_polling(self, context: ToolCallContext) -> None:
        if context.synchronizer is None:
            context.synchronizer = self.synchronizer_factory()

        async def on_update(record: ExecutionRecord) -> None:
            context.reconcile(record)
            if record.is_terminal:
                logger.info(f"🏁 {context.tool_call_id} finished with status {record.status.value}")
                await self.recovery.recover(context, record)

        context.synchronizer.start(context.tool_call_id, on_update, initial_status=context.status)

    async def restore(self, tool_call_id: str) -> Optional[str]:
        """Rebuild the display text of a mounted tool call after a reload."""
        context = self.get_context(tool_call_id)
        recovered = await self.recovery.recover(context)
        return recovered.text if recovered else None
