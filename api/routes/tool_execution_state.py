"""Tool execution state API routes."""

import logging
from typing import Optional, Union

from fastapi import APIRouter, HTTPException, Query, Request

from common.errors import InvalidTransitionError, RecordNotFoundError
from common.models import ExecutionRecord, is_valid_chat_id, scoped_chat_id
from store.api import QueryableExecutionStateStore

from ..models.execution_state import CreateExecutionStateRequest, UpdateExecutionStateRequest

logger = logging.getLogger(__name__)

execution_state_router = APIRouter()


def get_store(request: Request) -> QueryableExecutionStateStore:
    """Get the execution state store from app state."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Execution state store not initialized")
    return store  # type: ignore[no-any-return]


@execution_state_router.get(
    "/tool-execution-state", response_model=Union[ExecutionRecord, list[ExecutionRecord]]
)
async def get_execution_state(
    request: Request,
    tool_call_id: Optional[str] = Query(None, description="Tool call to read"),
    chat_id: Optional[str] = Query(None, description="Chat to list records for"),
    message_id: Optional[int] = Query(None, description="Narrow a chat listing to one message"),
) -> Union[ExecutionRecord, list[ExecutionRecord]]:
    """Get one record by tool call id, or list the records of a chat."""
    store = get_store(request)

    if tool_call_id:
        record = await store.get(tool_call_id)
        if not record:
            raise HTTPException(status_code=404, detail=f"Tool call {tool_call_id} not found")
        return record

    if chat_id:
        if message_id is not None:
            return await store.list_by_message(chat_id, message_id)
        return await store.list_by_chat(chat_id)

    raise HTTPException(status_code=400, detail="Either tool_call_id or chat_id is required")


@execution_state_router.post("/tool-execution-state", response_model=ExecutionRecord)
async def create_execution_state(
    body: CreateExecutionStateRequest, request: Request
) -> ExecutionRecord:
    """Create the record for a tool call, returning the existing one if present."""
    store = get_store(request)

    chat_id = scoped_chat_id(body.chat_id)
    if not is_valid_chat_id(body.chat_id):
        logger.warning(f"Invalid chat_id {body.chat_id!r} for {body.tool_call_id}, using unscoped id")

    try:
        return await store.create(
            chat_id, body.message_id, body.tool_call_id, body.tool_name, body.tool_params
        )
    except Exception as e:
        logger.error(f"❌ Create execution state error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to create execution state: {str(e)}")


@execution_state_router.put("/tool-execution-state", response_model=ExecutionRecord)
async def update_execution_state(
    body: UpdateExecutionStateRequest, request: Request
) -> ExecutionRecord:
    """Apply a status transition and/or replace the tool parameters."""
    store = get_store(request)

    if body.status is None and body.tool_params is None:
        raise HTTPException(status_code=400, detail="Nothing to update")

    try:
        record: Optional[ExecutionRecord] = None
        if body.tool_params is not None:
            record = await store.update_params(body.tool_call_id, body.tool_params)
        if body.status is not None:
            record = await store.update(
                body.tool_call_id,
                body.status,
                result=body.result,
                error_message=body.error_message,
            )
        return record  # type: ignore[return-value]
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        logger.info(f"Rejected transition: {e}")
        raise HTTPException(status_code=409, detail=str(e))
