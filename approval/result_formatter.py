"""Normalization of heterogeneous tool results into display markdown.

Tool providers return strings, MCP-style ``{"content": [...]}`` envelopes,
JSON encoded inside those envelopes, bare arrays and nested objects. The
raw value is first reduced to a ``ToolResultPayload`` tagged with its
provider family, then rendered by the formatter registered for that family.

Formatting is idempotent: text that already carries markdown markers is
returned unchanged.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from common.errors import CorruptionError
from common.models import ResultFamily
from config import RESULT_FAMILY_CONFIG

logger = logging.getLogger(__name__)

CORRUPTION_SIGNATURE = "[object Object]"
DEGRADED_RESULT_NOTICE = (
    "⚠️ Tool completed successfully, but result format was not preserved during reload. "
    "Please try running the tool again for full details."
)
MARKDOWN_MARKERS = ("**", "](", "###", "📅", "✅", "❌", "⚠️")

_EVENT_LINE = re.compile(r"^\d+\.\s", re.MULTILINE)
_EMAIL = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
_URL = re.compile(r"(https?://[^\s]+)")
_LIST_PATTERNS = (re.compile(r"\[.*\]"), re.compile(r"^\d+\.\s", re.MULTILINE), re.compile(r"^[-*•]\s", re.MULTILINE))
_DATE_PATTERNS = (
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(r"\d{1,2}/\d{1,2}/\d{4}"),
    re.compile(r"(Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday)", re.IGNORECASE),
    re.compile(r"\d{1,2}:\d{2}(\s?(AM|PM))?", re.IGNORECASE),
)


@dataclass
class ToolResultPayload:
    """A raw result reduced to the data worth rendering, tagged by family."""

    family: ResultFamily
    data: Any
    source_text: Optional[str] = None  # Text the data was parsed from, if any


@dataclass
class FormattedResult:
    markdown: str
    family: ResultFamily
    has_rich_content: bool


def has_markdown_markers(text: str) -> bool:
    """Check whether text was already formatted."""
    return any(marker in text for marker in MARKDOWN_MARKERS)


def detect_family(tool_name: Optional[str]) -> ResultFamily:
    """Map a tool name onto its provider family."""
    name = (tool_name or "").lower()
    for family in (ResultFamily.CALENDAR, ResultFamily.MAIL):
        if any(fragment in name for fragment in RESULT_FAMILY_CONFIG[family.value]):
            return family
    return ResultFamily.GENERIC


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _first_text_part(raw: dict[str, Any]) -> Optional[str]:
    content = raw.get("content")
    if not isinstance(content, list):
        return None
    for part in content:
        if isinstance(part, dict) and part.get("type") == "text":
            text = part.get("text")
            return text if isinstance(text, str) else None
    return None


def _parse_json_text(text: str) -> Any:
    """Parse JSON-looking text, returning the text itself when it is not JSON."""
    stripped = text.strip()
    if not stripped or stripped[0] not in "{[":
        return text
    try:
        return json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        logger.debug("Result text looked like JSON but did not parse, using raw text")
        return text


def _select_field(data: Any, family: ResultFamily, prefer_results: bool = False) -> Any:
    if not isinstance(data, dict):
        return data
    if (family == ResultFamily.CALENDAR or prefer_results) and isinstance(data.get("results"), list):
        return data["results"]
    if isinstance(data.get("result"), list):
        return data["result"]
    return data


def extract_payload(
    raw: Any, tool_name: Optional[str] = None, prefer_results: bool = False
) -> ToolResultPayload:
    """Reduce a raw tool result to a tagged payload.

    Handles, in order: plain strings, objects carrying typed content parts
    (the first ``text`` part wins), and JSON encoded in either of those.
    """
    family = detect_family(tool_name)
    source_text: Optional[str] = None

    if isinstance(raw, dict) and "content" in raw:
        text = _first_text_part(raw)
        if text is None:
            logger.debug(f"No text content part in result for {tool_name}")
            return ToolResultPayload(ResultFamily.OPAQUE, raw)
        source_text = text
        data = _parse_json_text(text)
    elif isinstance(raw, str):
        source_text = raw
        data = _parse_json_text(raw)
    else:
        data = raw

    data = _select_field(data, family, prefer_results=prefer_results)
    if data is not None and not isinstance(data, (str, int, float, bool, list, dict)):
        return ToolResultPayload(ResultFamily.OPAQUE, data, source_text)
    return ToolResultPayload(family, data, source_text)


def _contains_corruption(data: Any) -> bool:
    if isinstance(data, str):
        return CORRUPTION_SIGNATURE in data
    try:
        return CORRUPTION_SIGNATURE in json.dumps(data, default=str)
    except (TypeError, ValueError):
        return False


def _recover_payload(stored_payload: Any, tool_name: Optional[str]) -> ToolResultPayload:
    """Re-parse the originally stored nested payload in place of a corrupted one."""
    if stored_payload is None:
        raise CorruptionError("Corrupted result and no stored payload to recover from")
    payload = extract_payload(stored_payload, tool_name, prefer_results=True)
    if payload.family == ResultFamily.OPAQUE or _contains_corruption(payload.data):
        raise CorruptionError("Stored payload is corrupted as well")
    return payload


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _format_decimal(value: float, min_digits: int, max_digits: int) -> str:
    text = f"{value:,.{max_digits}f}"
    if max_digits > min_digits and "." in text:
        whole, fraction = text.split(".")
        fraction = fraction.rstrip("0")
        if len(fraction) < min_digits:
            fraction = fraction.ljust(min_digits, "0")
        text = f"{whole}.{fraction}" if fraction else whole
    return text


def _format_number(value: float) -> str:
    if isinstance(value, int) or float(value).is_integer():
        return f"{int(value):,}"
    return _format_decimal(value, 2, 6)


def format_currency(value: float, currency_key: str) -> str:
    """Format a price with the symbol for its currency key."""
    currency = currency_key.lower()
    if currency == "usd" or "dollar" in currency:
        digits = (4, 6) if value < 1 else (2, 2)
        return f"${_format_decimal(value, *digits)}"
    if currency == "eur" or "euro" in currency:
        return f"€{_format_decimal(value, 2, 2)}"
    if currency == "gbp" or "pound" in currency:
        return f"£{_format_decimal(value, 2, 2)}"
    if currency in ("btc", "bitcoin"):
        return f"₿{_format_decimal(value, 6, 8)}"
    if currency in ("eth", "ethereum"):
        return f"Ξ{_format_decimal(value, 4, 6)}"
    digits = (4, 6) if value < 1 else (2, 2)
    return f"{_format_decimal(value, *digits)} {currency.upper()}"


def format_timestamp(timestamp: float, now: Optional[datetime] = None) -> str:
    """Render a Unix timestamp (seconds or milliseconds) relative to now."""
    seconds = timestamp if timestamp < 10_000_000_000 else timestamp / 1000
    try:
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "Updated recently"

    now = now or datetime.now(timezone.utc)
    minutes = int((now - moment).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "Just updated"
    if minutes < 60:
        return f"Updated {minutes} minute{'' if minutes == 1 else 's'} ago"
    if hours < 24:
        return f"Updated {hours} hour{'' if hours == 1 else 's'} ago"
    if days < 7:
        return f"Updated {days} day{'' if days == 1 else 's'} ago"
    label = f"{moment.strftime('%b')} {moment.day}"
    if moment.year != now.year:
        label += f", {moment.year}"
    return f"Updated on {label}"


def format_key(key: str) -> str:
    """``maxResults`` / ``max_results`` -> ``Max Results``."""
    spaced = re.sub(r"([A-Z])", r" \1", key)
    spaced = re.sub(r"[_-]", " ", spaced)
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced).strip()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_price_key(key: str) -> bool:
    lowered = key.lower()
    return lowered == "usd" or "price" in lowered


def enhance_urls(text: str) -> str:
    return _URL.sub(r"[\1](\1)", text)


def enhance_emails(text: str) -> str:
    return _EMAIL.sub(r"**\1**", text)


def format_value(value: Any) -> str:
    if value is None:
        return "Not specified"
    if isinstance(value, bool):
        return "✅ Yes" if value else "❌ No"
    if _is_number(value):
        return _format_number(value)
    if isinstance(value, list):
        if not value:
            return "Empty list"
        return "\n".join(f"- {item}" for item in value)
    if isinstance(value, dict):
        return format_object(value)
    return enhance_emails(enhance_urls(str(value)))


def _format_nested(value: dict[str, Any]) -> str:
    if len(value) == 1:
        nested_key, nested_value = next(iter(value.items()))
        if _is_number(nested_value) and _is_price_key(nested_key):
            return format_currency(nested_value, nested_key)
        return format_value(nested_value)

    parts = []
    for nested_key, nested_value in value.items():
        lowered = nested_key.lower()
        if _is_number(nested_value) and any(word in lowered for word in ("updated", "time", "date")):
            parts.append(format_timestamp(nested_value))
        elif _is_number(nested_value) and _is_price_key(nested_key):
            parts.append(format_currency(nested_value, nested_key))
        elif "updated" in lowered or "timestamp" in lowered:
            continue
        else:
            parts.append(f"{format_key(nested_key)}: {format_value(nested_value)}")
    return ", ".join(parts)


def format_object(obj: dict[str, Any]) -> str:
    """Render an object as ``**Key**: value`` blocks separated by blank lines."""
    if not obj:
        return "No data available."

    blocks = []
    for key, value in obj.items():
        if isinstance(value, dict):
            rendered = _format_nested(value)
        else:
            rendered = format_value(value)
        blocks.append(f"**{format_key(key)}**: {rendered}")
    return "\n\n".join(blocks)


def _format_object_inline(obj: dict[str, Any]) -> str:
    if not obj:
        return "Empty object"
    entries = list(obj.items())
    inline = ", ".join(f"{format_key(key)}: {str(value)[:50]}" for key, value in entries[:3])
    return f"{inline}..." if len(entries) > 3 else inline


# ---------------------------------------------------------------------------
# Family renderers
# ---------------------------------------------------------------------------


def is_calendar_event(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    return bool(
        obj.get("kind") == "calendar#event"
        or (obj.get("summary") and obj.get("start") and obj.get("end"))
        or (obj.get("title") and obj.get("start"))
        or (obj.get("event") and obj.get("date"))
    )


def _event_date_line(start: Any) -> Optional[str]:
    if isinstance(start, dict):
        start_date = start.get("date") or start.get("dateTime") or start.get("date_pretty")
        if not isinstance(start_date, str):
            return None
        date_text = start.get("date_pretty") or start.get("dateTime_pretty") or start_date
        time = start.get("time")
        if time and time not in date_text:
            date_text = f"{date_text} at {time}"
        return f"📅 **{date_text}**" if time else f"📅 **{date_text}** (All day)"
    if isinstance(start, str) and start:
        return f"📅 **{start}** (All day)"
    return None


def _reminder_line(reminders: Any) -> Optional[str]:
    overrides = reminders.get("overrides") if isinstance(reminders, dict) else None
    if not isinstance(overrides, list) or not overrides:
        return None
    labels = []
    for reminder in overrides:
        method = reminder.get("method") or "notification"
        minutes = reminder.get("minutes") or 0
        labels.append(f"{method} ({minutes // 60}h before)" if minutes >= 60 else f"{method} ({minutes}m before)")
    return f"🔔 **Reminders:** {', '.join(labels)}"


def format_calendar_event(event: dict[str, Any], index: Optional[int] = None) -> str:
    """Render one calendar event as a small markdown block."""
    title = event.get("summary") or event.get("title") or event.get("event") or "Untitled Event"
    prefix = f"{index}. " if index else ""
    lines = [f"{prefix}**{title}**"]

    date_line = _event_date_line(event.get("start"))
    if date_line:
        lines.append(date_line)

    hours, minutes = event.get("duration_hours"), event.get("duration_minutes")
    if hours and hours != 24:
        lines.append(f"⏱️ **Duration:** {hours} hours")
    elif minutes and minutes != 1440:
        lines.append(f"⏱️ **Duration:** {minutes} minutes")

    if event.get("location"):
        lines.append(f"📍 **Location:** {event['location']}")

    description = event.get("description")
    if isinstance(description, str) and description and len(description) < 200:
        lines.append(f"📝 **Description:** {description}")

    reminder_line = _reminder_line(event.get("reminders"))
    if reminder_line:
        lines.append(reminder_line)

    status = event.get("status")
    if status and status != "confirmed":
        lines.append(f"📊 **Status:** {status}")

    return "\n".join(lines)


def format_email_list(emails: list[dict[str, Any]]) -> str:
    blocks = []
    for index, email in enumerate(emails, start=1):
        lines = [f"{index}. **{email.get('subject') or 'No Subject'}**"]
        lines.append(f"From: {email.get('from') or email.get('sender') or 'Unknown Sender'}")
        date = email.get("date") or email.get("received_at")
        if date:
            lines.append(f"Date: {date}")
        snippet = email.get("snippet") or email.get("preview")
        if snippet:
            lines.append(f"Preview: {snippet}")
        blocks.append("\n   ".join(lines))
    return "\n\n".join(blocks)


def format_array(items: list[Any]) -> str:
    if not items:
        return "No items found."
    lines = []
    for index, item in enumerate(items, start=1):
        if is_calendar_event(item):
            lines.append(format_calendar_event(item, index))
        elif isinstance(item, dict):
            lines.append(f"{index}. {_format_object_inline(item)}")
        else:
            lines.append(f"{index}. {item}")
    return "\n".join(lines)


def _looks_like_emails(data: Any) -> bool:
    return isinstance(data, list) and bool(data) and isinstance(data[0], dict) and bool(data[0].get("subject"))


def _render_structured(data: Any) -> str:
    if _looks_like_emails(data):
        return format_email_list(data)
    if isinstance(data, list):
        return format_array(data)
    if isinstance(data, dict):
        return format_object(data)
    return format_value(data)


_FORMATTERS: dict[ResultFamily, Callable[[Any], str]] = {}


def register_formatter(family: ResultFamily) -> Callable[[Callable[[Any], str]], Callable[[Any], str]]:
    """Register the renderer used for one result family."""

    def decorator(func: Callable[[Any], str]) -> Callable[[Any], str]:
        _FORMATTERS[family] = func
        return func

    return decorator


@register_formatter(ResultFamily.CALENDAR)
def _render_calendar(data: Any) -> str:
    if isinstance(data, dict) and is_calendar_event(data):
        return format_calendar_event(data)
    rendered = _render_structured(data)
    if "📅" in rendered and "found" not in rendered and "calendar event" not in rendered:
        count = len(_EVENT_LINE.findall(rendered))
        if count:
            noun = "event" if count == 1 else "events"
            rendered = f"I found {count} calendar {noun} matching your request:\n\n{rendered}"
    return rendered


@register_formatter(ResultFamily.MAIL)
def _render_mail(data: Any) -> str:
    if isinstance(data, dict) and data.get("subject"):
        return format_email_list([data])
    return _render_structured(data)


@register_formatter(ResultFamily.GENERIC)
def _render_generic(data: Any) -> str:
    return _render_structured(data)


@register_formatter(ResultFamily.OPAQUE)
def _render_opaque(data: Any) -> str:
    return str(data)


# ---------------------------------------------------------------------------
# Text enhancement
# ---------------------------------------------------------------------------


def validate_markdown(text: str) -> str:
    """Close a dangling ``**`` at the end of the word it opens."""
    if text.count("**") % 2 == 0:
        return text

    logger.warning("Detected unmatched ** in markdown, attempting to fix")
    last = text.rfind("**")
    if text[:last].count("**") % 2 == 0:
        after = text[last + 2 :]
        boundary = re.search(r"\s|$", after)
        insert_at = last + 2 + (boundary.start() if boundary else len(after))
        text = text[:insert_at] + "**" + text[insert_at:]
    return text


def enhance_text(text: str) -> str:
    """Apply the plain-text enhancements in a fixed order."""
    # Structure first
    text = re.sub(r"^(\d+)\.(\S)", r"\1. \2", text, flags=re.MULTILINE)
    text = re.sub(r"^([-*])(\S)", r"\1 \2", text, flags=re.MULTILINE)
    text = re.sub(r"^(\w+):\s*(.+)$", r"**\1:** \2", text, flags=re.MULTILINE)

    # Inline formatting
    text = re.sub(r"(\d{4}-\d{2}-\d{2})", r"**\1**", text)
    text = re.sub(
        r"(Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday)",
        r"**\1**",
        text,
        flags=re.IGNORECASE,
    )
    text = re.sub(r"(\d{1,2}:\d{2}(\s?(AM|PM))?)", r"**\1**", text, flags=re.IGNORECASE)
    text = enhance_emails(text)
    text = enhance_urls(text)

    # Important words last, most likely to conflict
    text = re.sub(r"(found \d+ [^:\n]+)", r"**\1**", text, flags=re.IGNORECASE)
    text = re.sub(r"\b(error|warning|success|completed|failed)\b", r"**\1**", text, flags=re.IGNORECASE)

    return validate_markdown(text)


def _has_rich_patterns(text: str) -> bool:
    return (
        any(pattern.search(text) for pattern in _LIST_PATTERNS)
        or any(pattern.search(text) for pattern in _DATE_PATTERNS)
        or bool(_URL.search(text))
        or bool(_EMAIL.search(text))
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _render(payload: ToolResultPayload) -> FormattedResult:
    data = payload.data
    structured = isinstance(data, (list, dict))

    if isinstance(data, str):
        if has_markdown_markers(data):
            return FormattedResult(data, payload.family, True)
        markdown = enhance_text(data)
    else:
        renderer = _FORMATTERS.get(payload.family, _render_generic)
        markdown = renderer(data)
        if not has_markdown_markers(markdown):
            markdown = enhance_text(markdown)

    if structured:
        markdown = re.sub(r"\n{3,}", "\n\n", markdown)
    markdown = markdown.strip() or "No data available."

    rich = structured or has_markdown_markers(markdown) or _has_rich_patterns(markdown)
    return FormattedResult(markdown, payload.family, rich)


def format_tool_result(
    raw: Any, tool_name: Optional[str] = None, stored_payload: Any = None
) -> FormattedResult:
    """Format a raw tool result for display.

    Args:
        raw: Result as received or as read back from storage
        tool_name: Tool that produced the result, used to pick the family
        stored_payload: Originally stored nested payload used to repair a
            result carrying the ``[object Object]`` serialization artifact.
            Callers with no separate copy pass the raw envelope itself; the
            repair pass selects its ``results`` list instead of the summary

    Returns:
        FormattedResult whose markdown never contains the corruption signature
    """
    family = detect_family(tool_name)

    if raw is None:
        return FormattedResult("No data available.", family, False)
    if isinstance(raw, str) and has_markdown_markers(raw):
        return FormattedResult(raw, family, True)

    try:
        payload = extract_payload(raw, tool_name)
        if _contains_corruption(payload.data):
            logger.warning(f"⚠️ Detected {CORRUPTION_SIGNATURE} in result for {tool_name}, re-parsing stored payload")
            payload = _recover_payload(stored_payload, tool_name)

        formatted = _render(payload)
        if CORRUPTION_SIGNATURE in formatted.markdown:
            raise CorruptionError("Rendered result still carries a serialization artifact")
        return formatted
    except CorruptionError as e:
        logger.warning(f"Result for {tool_name} could not be repaired: {e}")
        return FormattedResult(DEGRADED_RESULT_NOTICE, family, False)
    except Exception as e:
        logger.error(f"Error formatting tool result for {tool_name}: {e}", exc_info=True)
        text = raw if isinstance(raw, str) else str(raw)
        return FormattedResult(text, family, False)
