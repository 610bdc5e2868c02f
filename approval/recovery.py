"""Reconstruction of previously displayed tool results after a reload."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from common.models import ExecutionRecord, ExecutionStatus

from .context import ToolCallContext
from .result_cache import ResultCache
from .result_formatter import (
    CORRUPTION_SIGNATURE,
    DEGRADED_RESULT_NOTICE,
    FormattedResult,
    format_tool_result,
)

logger = logging.getLogger(__name__)

Formatter = Callable[..., FormattedResult]


def _is_clean(text: Optional[str]) -> bool:
    if not text:
        return False
    return CORRUPTION_SIGNATURE not in text


class RecoveryTier(str, Enum):
    RENDER_MARKER = "render_marker"
    DURABLE_CACHE = "durable_cache"
    SESSION = "session"
    COLD_FORMAT = "cold_format"


@dataclass
class RecoveredResult:
    text: str
    tier: RecoveryTier


def render_record(record: ExecutionRecord, formatter: Formatter = format_tool_result) -> Optional[str]:
    """Format a record's stored result from scratch.

    The record holds the tool's full result envelope, so it is also the
    payload the formatter re-parses if the first pass finds the
    ``[object Object]`` artifact. The repair pass prefers the envelope's
    ``results`` list over a flattened summary field.
    """
    if record.status == ExecutionStatus.ERROR:
        return f"Error: {record.error_message or 'Tool execution failed'}"
    if record.result is None:
        return None
    formatted = formatter(record.result, record.tool_name, stored_payload=record.result)
    return formatted.markdown


class RecoveryChain:
    """Ordered lookup of display text, first hit wins.

    1. Render marker attached to the owning message
    2. Durable cache keyed by ``(chat_id, tool_call_id)``
    3. Result rendered earlier in this session
    4. The formatter run cold against the stored record

    The winning text is written through to every tier that missed.
    """

    def __init__(self, cache: ResultCache, formatter: Formatter = format_tool_result):
        self.cache = cache
        self.formatter = formatter

    async def _read_cache(self, context: ToolCallContext) -> Optional[str]:
        try:
            return await self.cache.get(context.chat_id, context.tool_call_id)
        except Exception as e:
            logger.warning(f"Result cache read failed for {context.tool_call_id}: {e}")
            return None

    async def _write_cache(self, context: ToolCallContext, text: str) -> None:
        try:
            await self.cache.put(context.chat_id, context.tool_call_id, text)
        except Exception as e:
            logger.warning(f"Result cache write failed for {context.tool_call_id}: {e}")

    async def recover(
        self, context: ToolCallContext, record: Optional[ExecutionRecord] = None
    ) -> Optional[RecoveredResult]:
        """Find the text shown for a tool call, or None if nothing is known yet.

        A tier holding the ``[object Object]`` artifact counts as a miss and is
        overwritten with whatever a later tier yields.
        """
        tool_call_id = context.tool_call_id
        record = record or context.record

        cached: Optional[str] = None
        cache_checked = False
        recovered: Optional[RecoveredResult] = None
        saw_corruption = False

        def usable(text: Optional[str], tier: RecoveryTier) -> bool:
            nonlocal saw_corruption
            if not text:
                return False
            if CORRUPTION_SIGNATURE in text:
                logger.warning(f"⚠️ Skipping corrupted {tier.value} text for {tool_call_id}")
                saw_corruption = True
                return False
            return True

        marker = context.message_markers.get(tool_call_id)
        if usable(marker, RecoveryTier.RENDER_MARKER):
            recovered = RecoveredResult(marker, RecoveryTier.RENDER_MARKER)
        else:
            cached = await self._read_cache(context)
            cache_checked = True
            if usable(cached, RecoveryTier.DURABLE_CACHE):
                recovered = RecoveredResult(cached, RecoveryTier.DURABLE_CACHE)
            elif usable(context.session_result, RecoveryTier.SESSION):
                recovered = RecoveredResult(context.session_result, RecoveryTier.SESSION)
            elif record is not None:
                text = render_record(record, self.formatter)
                if text:
                    recovered = RecoveredResult(text, RecoveryTier.COLD_FORMAT)
            if recovered is None and saw_corruption:
                recovered = RecoveredResult(DEGRADED_RESULT_NOTICE, RecoveryTier.COLD_FORMAT)

        if recovered is None:
            logger.debug(f"No recoverable result for {tool_call_id}")
            return None

        logger.debug(f"Recovered result for {tool_call_id} from {recovered.tier.value}")
        if not cache_checked:
            cached = await self._read_cache(context)
        await self._write_through(context, recovered.text, cache_missing=not _is_clean(cached))
        context.display_text = recovered.text
        return recovered

    async def remember(self, context: ToolCallContext, text: str) -> None:
        """Record freshly rendered text in every tier."""
        context.display_text = text
        context.session_result = text
        context.message_markers[context.tool_call_id] = text
        await self._write_cache(context, text)

    async def _write_through(self, context: ToolCallContext, text: str, cache_missing: bool) -> None:
        if not _is_clean(context.message_markers.get(context.tool_call_id)):
            context.message_markers[context.tool_call_id] = text
        if cache_missing:
            await self._write_cache(context, text)
        if not _is_clean(context.session_result):
            context.session_result = text
