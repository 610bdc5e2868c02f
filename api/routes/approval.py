"""Approval command API route."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from pydantic import ValidationError

from common.errors import InvalidTransitionError, RecordNotFoundError
from common.models import (
    ApprovalAction,
    ApprovalCommand,
    ApprovalCommandResponse,
    DebugInfo,
    ExecutionRecord,
    ExecutionStatus,
)
from store.api import QueryableExecutionStateStore
from tools.registry import ToolExecutor

from .tool_execution_state import get_store

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

approval_router = APIRouter()

ALREADY_PROCESSED = "Tool call already processed"


def _respond(status_code: int, response: ApprovalCommandResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response.to_wire())


def _already_processed(record: ExecutionRecord) -> JSONResponse:
    return _respond(
        409,
        ApprovalCommandResponse(
            success=False,
            error=ALREADY_PROCESSED,
            tool_call_id=record.tool_call_id,
            tool_name=record.tool_name,
            status=record.status,
        ),
    )


def get_executor(request: Request) -> Optional[ToolExecutor]:
    return getattr(request.app.state, "executor", None)


@approval_router.post("/chat/approve")
async def approve_tool_call(request: Request, payload: Any = Body(None)) -> JSONResponse:
    """Approve or cancel a pending tool call.

    Only a pending record accepts a command; anything else answers 409 so
    approve and cancel stay mutually exclusive.
    """
    try:
        command = ApprovalCommand.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Invalid approval command: {e.error_count()} validation errors")
        return _respond(
            400,
            ApprovalCommandResponse(
                success=False,
                error="Invalid request",
                details=str(e),
                debug_info=DebugInfo(is_bad_request_error=True),
            ),
        )

    store = get_store(request)
    record = await store.get(command.tool_call_id)
    if record is None:
        return _respond(
            404,
            ApprovalCommandResponse(
                success=False,
                error="Tool call not found",
                tool_call_id=command.tool_call_id,
                debug_info=DebugInfo(tool_found=False),
            ),
        )
    if record.status != ExecutionStatus.PENDING:
        logger.info(f"Rejecting {command.action.value} for {record.tool_call_id}: {record.status.value}")
        return _already_processed(record)

    with tracer.start_as_current_span(f"approval.{command.action.value}") as span:
        span.set_attribute("tool.name", record.tool_name)
        span.set_attribute("approval.tool_call_id", record.tool_call_id)
        if command.session_id:
            span.set_attribute("approval.session_id", command.session_id)

        if command.action == ApprovalAction.CANCEL:
            return await _cancel(store, record)
        return await _approve(store, get_executor(request), record, command, span)


async def _cancel(store: QueryableExecutionStateStore, record: ExecutionRecord) -> JSONResponse:
    try:
        cancelled = await store.compare_and_set(
            record.tool_call_id, ExecutionStatus.PENDING, ExecutionStatus.CANCELLED
        )
    except InvalidTransitionError as e:
        logger.info(f"Cancel lost the race for {record.tool_call_id}: {e}")
        current = await store.get(record.tool_call_id)
        return _already_processed(current or record)

    logger.info(f"🚫 Tool call {record.tool_call_id} cancelled by user")
    return _respond(
        200,
        ApprovalCommandResponse(
            success=True,
            cancelled=True,
            tool_call_id=cancelled.tool_call_id,
            tool_name=cancelled.tool_name,
            status=cancelled.status,
        ),
    )


async def _approve(
    store: QueryableExecutionStateStore,
    executor: Optional[ToolExecutor],
    record: ExecutionRecord,
    command: ApprovalCommand,
    span: Any,
) -> JSONResponse:
    tool_call_id = record.tool_call_id
    try:
        await store.compare_and_set(tool_call_id, ExecutionStatus.PENDING, ExecutionStatus.APPROVED)
    except InvalidTransitionError as e:
        logger.info(f"Approve lost the race for {tool_call_id}: {e}")
        current = await store.get(tool_call_id)
        return _already_processed(current or record)

    logger.info(f"✅ Tool call {tool_call_id} approved by user")

    try:
        if command.params:
            record = await store.update_params(
                tool_call_id, {**record.tool_params, **command.params}
            )
        await store.update(tool_call_id, ExecutionStatus.RUNNING)

        if executor is None:
            result_error, debug = "No active tool client available", DebugInfo(has_active_client=False)
            content = None
        else:
            result = await executor.execute(tool_call_id, record.tool_name, record.tool_params)
            content = result.content
            result_error = result.error if result.is_error else None
            debug = DebugInfo.from_error_message(
                result_error or "", result.has_active_client, result.tool_found
            )

        if result_error is not None:
            span.set_attribute("tool.success", False)
            span.set_attribute("tool.error", result_error)
            failed = await store.update(
                tool_call_id, ExecutionStatus.ERROR, error_message=result_error
            )
            return _respond(
                500,
                ApprovalCommandResponse(
                    success=False,
                    error="Tool execution failed",
                    details=result_error,
                    tool_call_id=tool_call_id,
                    tool_name=record.tool_name,
                    status=failed.status,
                    debug_info=debug,
                ),
            )

        completed = await store.update(tool_call_id, ExecutionStatus.COMPLETED, result=content)
        span.set_attribute("tool.success", True)
        return _respond(
            200,
            ApprovalCommandResponse(
                success=True,
                tool_result=content,
                tool_call_id=tool_call_id,
                tool_name=record.tool_name,
                status=completed.status,
            ),
        )

    except (RecordNotFoundError, InvalidTransitionError) as e:
        logger.error(f"❌ Approval state error for {tool_call_id}: {e}", exc_info=True)
        span.record_exception(e)
        return _respond(
            409,
            ApprovalCommandResponse(
                success=False, error=ALREADY_PROCESSED, details=str(e), tool_call_id=tool_call_id
            ),
        )
    except Exception as e:
        logger.error(f"❌ Approval error for {tool_call_id}: {str(e)}", exc_info=True)
        span.record_exception(e)
        try:
            await store.upsert(
                record.chat_id,
                record.message_id,
                tool_call_id,
                record.tool_name,
                record.tool_params,
                status=ExecutionStatus.ERROR,
                error_message=str(e),
            )
        except Exception as store_error:
            logger.error(f"Could not record failure for {tool_call_id}: {store_error}")
        return _respond(
            500,
            ApprovalCommandResponse(
                success=False,
                error="Tool execution failed",
                details=str(e),
                tool_call_id=tool_call_id,
                tool_name=record.tool_name,
                debug_info=DebugInfo.from_error_message(str(e)),
            ),
        )
