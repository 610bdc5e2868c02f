"""Tool executor used by the approval service once a call is approved."""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class ToolExecutionResult(BaseModel):
    """Outcome of running one approved tool call."""

    tool_call_id: str
    tool_name: str
    content: Optional[dict[str, Any]] = Field(
        None, description="Result as typed content parts, e.g. {'content': [{'type': 'text', ...}]}"
    )
    is_error: bool = False
    error: Optional[str] = None
    tool_found: bool = True
    has_active_client: bool = True


def to_content_parts(result: Any) -> dict[str, Any]:
    """Wrap a handler's return value in the typed content part envelope."""
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        return result
    text = result if isinstance(result, str) else json.dumps(result, default=str)
    return {"content": [{"type": "text", "text": text}]}


class ToolExecutor:
    """Registry of tool handlers keyed by tool name.

    Nothing is registered by default. Embedding applications register the
    side-effecting tools they want gated behind approval.
    """

    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        self.tools: dict[str, ToolHandler] = {}
        self.timeout_seconds = timeout_seconds
        self.is_active = True

    def register_tool(self, tool_name: str, handler: ToolHandler) -> None:
        self.tools[tool_name] = handler
        logger.debug(f"Registered tool: {tool_name}")

    def remove_tool(self, tool_name: str) -> None:
        if tool_name in self.tools:
            del self.tools[tool_name]
            logger.info(f"Removed tool: {tool_name}")

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self.tools

    def set_active(self, active: bool) -> None:
        """Mark the upstream tool client as connected or not."""
        self.is_active = active
        logger.info(f"Tool client {'connected' if active else 'disconnected'}")

    async def execute(
        self, tool_call_id: str, tool_name: str, parameters: dict[str, Any]
    ) -> ToolExecutionResult:
        """Run a registered tool. Failures are returned, never raised."""
        if not self.is_active:
            error_msg = "No active tool client available"
            logger.error(f"{error_msg} for {tool_name}")
            return ToolExecutionResult(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
                is_error=True,
                error=error_msg,
                has_active_client=False,
            )

        handler = self.tools.get(tool_name)
        if handler is None:
            error_msg = f"Tool '{tool_name}' not found in registered tools"
            logger.error(error_msg)
            return ToolExecutionResult(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
                is_error=True,
                error=error_msg,
                tool_found=False,
            )

        logger.info(f"🔧 Executing tool: {tool_name} ({tool_call_id})")
        try:
            if self.timeout_seconds:
                result = await asyncio.wait_for(handler(parameters), self.timeout_seconds)
            else:
                result = await handler(parameters)
        except asyncio.TimeoutError:
            error_msg = f"Tool execution timeout after {self.timeout_seconds}s"
            logger.error(f"🔧 Tool {tool_name} failed: {error_msg}")
            return ToolExecutionResult(
                tool_call_id=tool_call_id, tool_name=tool_name, is_error=True, error=error_msg
            )
        except Exception as e:
            logger.error(f"🔧 Tool {tool_name} failed: {e}", exc_info=True)
            return ToolExecutionResult(
                tool_call_id=tool_call_id, tool_name=tool_name, is_error=True, error=str(e)
            )

        logger.info(f"🔧 Tool {tool_name} returned: {str(result)[:100]}...")
        return ToolExecutionResult(
            tool_call_id=tool_call_id, tool_name=tool_name, content=to_content_parts(result)
        )
