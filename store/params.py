"""Tool parameter normalization applied before parameters are persisted."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

_RECENT_WORDS = ("recent", "latest", "last")
_SCOPED_QUERY_PREFIXES = ("in:", "from:", "subject:")


def _is_mail_search(tool_name: str) -> bool:
    return "find_email" in tool_name or "gmail_search" in tool_name


def _is_calendar(tool_name: str) -> bool:
    return "find_event" in tool_name or "calendar" in tool_name or "event" in tool_name


def _mail_query(instructions: str) -> str:
    if any(prefix in instructions for prefix in _SCOPED_QUERY_PREFIXES):
        return instructions
    lowered = instructions.lower()
    if any(word in lowered for word in _RECENT_WORDS):
        return "in:inbox"
    return instructions


def _calendar_query(instructions: str) -> str:
    lowered = instructions.lower()
    if "next" in lowered or "upcoming" in lowered or "future" in lowered:
        return "next events"
    if "today" in lowered:
        return "today events"
    if "tomorrow" in lowered:
        return "tomorrow events"
    if "this week" in lowered:
        return "this week events"
    return instructions


def normalize_tool_params(tool_name: str, params: dict[str, Any]) -> dict[str, Any]:
    """Map natural-language ``instructions`` onto the ``query`` argument search tools expect.

    Only mail-search and calendar tools are rewritten, and only when the
    model supplied ``instructions`` without a ``query``. Other parameters are
    returned unchanged.
    """
    normalized = dict(params)
    instructions = normalized.get("instructions")
    if not isinstance(instructions, str) or normalized.get("query"):
        return normalized

    if _is_mail_search(tool_name):
        normalized["query"] = _mail_query(instructions)
    elif _is_calendar(tool_name):
        normalized["query"] = _calendar_query(instructions)
    else:
        return normalized

    logger.debug(f"🔍 Mapped instructions to query for {tool_name}: {normalized['query']!r}")
    return normalized
