"""HTTP client for the toolgate approval service."""

import logging
from typing import Any, Optional

import httpx

from common.errors import ConflictError, RecordNotFoundError, TransportError
from common.models import (
    ApprovalCommand,
    ApprovalCommandResponse,
    ExecutionRecord,
    ExecutionStatus,
    TransportErrorKind,
)
from config import API_BASE_URL, APPROVAL_CONFIG
from store.api import ExecutionStateStore
from telemetry import get_tracer

logger = logging.getLogger(__name__)

_STATUS_KINDS = {
    400: TransportErrorKind.BAD_REQUEST,
    401: TransportErrorKind.AUTH,
    403: TransportErrorKind.AUTH,
    408: TransportErrorKind.TIMEOUT,
    503: TransportErrorKind.NO_ACTIVE_CLIENT,
    504: TransportErrorKind.TIMEOUT,
}


def kind_for_status(status_code: int) -> TransportErrorKind:
    return _STATUS_KINDS.get(status_code, TransportErrorKind.UNKNOWN)


def _json_body(response: httpx.Response) -> Optional[dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class ToolGateAPIClient(ExecutionStateStore):
    """Execution state store and command channel backed by the HTTP API.

    Network failures surface as ``TransportError``. A 409 from the command
    endpoint surfaces as ``ConflictError``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else APPROVAL_CONFIG["request_timeout_seconds"]
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=transport
        )
        self.tracer = get_tracer(__name__)

    async def __aenter__(self) -> "ToolGateAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"⏱️ {method} {path} timed out after {self.timeout}s")
            raise TransportError(TransportErrorKind.TIMEOUT, f"Request timed out: {e}") from e
        except httpx.NetworkError as e:
            logger.warning(f"🔌 {method} {path} could not reach {self.base_url}: {e}")
            raise TransportError(
                TransportErrorKind.NETWORK_UNREACHABLE, f"Cannot reach approval service: {e}"
            ) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        body = _json_body(response) or {}
        message = body.get("detail") or body.get("error") or response.reason_phrase
        raise TransportError(
            kind_for_status(response.status_code),
            f"HTTP {response.status_code}: {message}",
            status_code=response.status_code,
            response=body,
        )

    async def get(self, tool_call_id: str) -> Optional[ExecutionRecord]:
        response = await self._request(
            "GET", "/api/tool-execution-state", params={"tool_call_id": tool_call_id}
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return ExecutionRecord.model_validate(response.json())

    async def list_by_chat(
        self, chat_id: str, message_id: Optional[int] = None
    ) -> list[ExecutionRecord]:
        params: dict[str, Any] = {"chat_id": chat_id}
        if message_id is not None:
            params["message_id"] = message_id
        response = await self._request("GET", "/api/tool-execution-state", params=params)
        self._raise_for_status(response)
        return [ExecutionRecord.model_validate(item) for item in response.json()]

    async def create(
        self,
        chat_id: str,
        message_id: int,
        tool_call_id: str,
        tool_name: str,
        tool_params: Optional[dict[str, Any]] = None,
    ) -> ExecutionRecord:
        response = await self._request(
            "POST",
            "/api/tool-execution-state",
            json={
                "chat_id": chat_id,
                "message_id": message_id,
                "tool_call_id": tool_call_id,
                "tool_name": tool_name,
                "tool_params": tool_params or {},
            },
        )
        self._raise_for_status(response)
        return ExecutionRecord.model_validate(response.json())

    async def update(
        self,
        tool_call_id: str,
        status: ExecutionStatus,
        result: Optional[Any] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionRecord:
        payload: dict[str, Any] = {"tool_call_id": tool_call_id, "status": status.value}
        if result is not None:
            payload["result"] = result
        if error_message is not None:
            payload["error_message"] = error_message

        response = await self._request("PUT", "/api/tool-execution-state", json=payload)
        if response.status_code == 404:
            raise RecordNotFoundError(tool_call_id)
        if response.status_code == 409:
            body = _json_body(response) or {}
            raise ConflictError(body.get("detail") or "Illegal status transition")
        self._raise_for_status(response)
        return ExecutionRecord.model_validate(response.json())

    async def send_command(self, command: ApprovalCommand) -> ApprovalCommandResponse:
        """Send an approve or cancel command.

        Raises:
            ConflictError: the tool call was already processed
            TransportError: the service could not be reached or refused the command
        """
        with self.tracer.start_as_current_span("approval.command") as span:
            span.set_attribute("approval.tool_call_id", command.tool_call_id)
            span.set_attribute("approval.action", command.action.value)

            logger.info(f"📤 Sending {command.action.value} for {command.tool_call_id}")
            response = await self._request(
                "POST",
                "/api/chat/approve",
                json=command.model_dump(mode="json", by_alias=True, exclude_none=True),
            )
            span.set_attribute("http.status_code", response.status_code)

            body = _json_body(response)
            parsed = ApprovalCommandResponse.model_validate(body) if body is not None else None

            if response.status_code == 409:
                status = parsed.status if parsed else None
                raise ConflictError(
                    (parsed.error if parsed else None) or "Tool call already processed", status
                )

            if not response.is_success:
                message = (parsed.error if parsed else None) or response.reason_phrase
                span.set_attribute("approval.error", message)
                raise TransportError(
                    kind_for_status(response.status_code),
                    message,
                    status_code=response.status_code,
                    response=parsed,
                )

            if parsed is None:
                raise TransportError(
                    TransportErrorKind.UNKNOWN,
                    "Received invalid response from server",
                    status_code=response.status_code,
                )
            return parsed
