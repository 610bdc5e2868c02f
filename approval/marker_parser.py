"""Extraction of approval requests embedded in streamed assistant text.

The generation layer has no structured side channel, so a tool call that
needs approval is signalled in-band with a sentinel marker::

    __REQUIRES_APPROVAL__:<toolCallId>:<toolName>

Everything before the first marker is narrative the user should see no
matter what happens to the tool call. When the marker is mangled, two
fallback error sentences are still recognized so the approval prompt is
never lost.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from common.errors import MarkerParseError
from common.models import ToolCallRequest

logger = logging.getLogger(__name__)

APPROVAL_SENTINEL = "__REQUIRES_APPROVAL__"

# Tokens exclude ':', ',', whitespace, '}' and '"'. The name stops where another
# sentinel begins; bare repeats are consumed but one opening ':<id>:<name>' is left
# for the next match
_TOKEN = r"[^:,\s}\"]"
_MARKER_PATTERN = re.compile(
    rf"{APPROVAL_SENTINEL}:({_TOKEN}+):((?:(?!{APPROVAL_SENTINEL}){_TOKEN})+)"
    rf"(?:{APPROVAL_SENTINEL}(?!:))*"
)
_SENTINEL_SUFFIX = re.compile(rf"(?:{APPROVAL_SENTINEL})+$")
_EXPLICIT_APPROVAL_PATTERN = re.compile(
    r"Tool execution failed: Error executing tool ([^:]+): "
    r"This tool requires explicit user approval"
)
_TOOL_ERROR_PATTERN = re.compile(r"Error executing tool ([^:]+):")

# Name fragment -> default arguments, checked in order
_DEFAULT_ARGS: list[tuple[str, dict[str, Any]]] = [
    ("gmail_find_email", {"query": "recent emails", "maxResults": 5}),
    ("gmail_create_draft", {"to": "", "subject": "", "body": ""}),
    ("gmail_send_email", {"to": "", "subject": "", "body": ""}),
    ("calendar", {"query": "upcoming events"}),
]


@dataclass
class ParsedMessage:
    """Result of scanning one chunk of streamed text."""

    narrative: str
    requests: list[ToolCallRequest] = field(default_factory=list)

    @property
    def requires_approval(self) -> bool:
        return bool(self.requests)

    def first_request(self) -> Optional[ToolCallRequest]:
        """Return the first request for callers that show one prompt at a time."""
        return self.requests[0] if self.requests else None


def strip_sentinel_suffix(tool_name: str) -> str:
    """Remove a sentinel accidentally re-appended to a tool name."""
    return _SENTINEL_SUFFIX.sub("", tool_name)


def default_args_for(tool_name: str) -> dict[str, Any]:
    """Minimal non-empty arguments so an approval preview is never blank."""
    for fragment, args in _DEFAULT_ARGS:
        if fragment in tool_name:
            return dict(args)
    return {}


def format_approval_marker(tool_call_id: str, tool_name: str) -> str:
    """Build the sentinel the generation layer embeds in its text output."""
    return f"{APPROVAL_SENTINEL}:{tool_call_id}:{strip_sentinel_suffix(tool_name)}"


def contains_approval_request(text: Optional[str]) -> bool:
    """Cheap check for any approval signal, well-formed or not."""
    if not text:
        return False
    if _MARKER_PATTERN.search(text):
        return True
    return bool(_EXPLICIT_APPROVAL_PATTERN.search(text) or _TOOL_ERROR_PATTERN.search(text))


def clean_marker(text: str) -> str:
    """Strip JSON artifacts around a marker, returning the canonical sentinel.

    Text without a well-formed marker is returned unchanged.
    """
    match = _MARKER_PATTERN.search(text or "")
    if not match:
        return text
    return format_approval_marker(match.group(1), match.group(2))


def display_tool_name(tool_name: str) -> str:
    """Human-readable tool name, e.g. ``mcp_gmail_send_email`` -> ``Gmail Send Email``."""
    name = strip_sentinel_suffix(tool_name)
    if name.startswith("mcp_"):
        name = name[len("mcp_") :]
    return " ".join(word.capitalize() for word in name.replace("_", " ").split())


def _synthesized_request(raw_name: str) -> ToolCallRequest:
    name = strip_sentinel_suffix(raw_name.strip().strip("`"))
    if not name:
        raise MarkerParseError(f"No tool name in fallback match {raw_name!r}")
    return ToolCallRequest(id=f"auto-{uuid.uuid4().hex}", name=name, args={}, synthesized=True)


def _fallback_request(text: str) -> tuple[int, Optional[ToolCallRequest]]:
    for pattern in (_EXPLICIT_APPROVAL_PATTERN, _TOOL_ERROR_PATTERN):
        match = pattern.search(text)
        if not match:
            continue
        try:
            request = _synthesized_request(match.group(1))
        except MarkerParseError as e:
            logger.debug(f"Skipping fallback match: {e}")
            continue
        logger.debug(f"Approval sentinel missing, matched fallback pattern for {request.name}")
        return match.start(), request
    return -1, None


def parse_approval_markers(text: Optional[str]) -> ParsedMessage:
    """Split streamed text into narrative and the approval requests it carries.

    Every well-formed sentinel is returned in order of appearance, with
    duplicate ids collapsed. The narrative is the text before the first
    marker with only the boundary whitespace trimmed.
    """
    if not text:
        return ParsedMessage(narrative="")

    requests: list[ToolCallRequest] = []
    seen: set[str] = set()
    first_index = -1

    for match in _MARKER_PATTERN.finditer(text):
        tool_call_id, raw_name = match.group(1), match.group(2)
        if first_index < 0:
            first_index = match.start()
        if tool_call_id in seen:
            continue
        seen.add(tool_call_id)

        tool_name = strip_sentinel_suffix(raw_name)
        if not tool_name:
            continue
        requests.append(
            ToolCallRequest(id=tool_call_id, name=tool_name, args=default_args_for(tool_name))
        )

    if requests:
        if len(requests) > 1:
            logger.info(f"Found {len(requests)} approval requests in one chunk")
        return ParsedMessage(narrative=text[:first_index].strip(), requests=requests)

    if APPROVAL_SENTINEL in text:
        # Sentinel present but malformed: keep the narrative before it
        first_index = text.index(APPROVAL_SENTINEL)

    fallback_index, fallback = _fallback_request(text)
    if fallback:
        cut = first_index if first_index >= 0 else fallback_index
        return ParsedMessage(narrative=text[:cut].strip(), requests=[fallback])

    if first_index >= 0:
        logger.warning("Malformed approval sentinel with no recognizable fallback")
        return ParsedMessage(narrative=text[:first_index].strip())

    return ParsedMessage(narrative=text)
