"""Client core of the approval gate.

Parses approval requests out of streamed text, drives their approve and
cancel commands, tracks execution status and restores rendered results.
"""

from .context import ApprovalFailure, ToolCallContext
from .controller import ApprovalController, LoggingNotifier, Notifier, classify_failure
from .marker_parser import (
    APPROVAL_SENTINEL,
    ParsedMessage,
    clean_marker,
    contains_approval_request,
    display_tool_name,
    format_approval_marker,
    parse_approval_markers,
)
from .recovery import RecoveredResult, RecoveryChain, RecoveryTier
from .result_cache import InMemoryResultCache, ResultCache, SQLiteResultCache
from .result_formatter import (
    DEGRADED_RESULT_NOTICE,
    FormattedResult,
    ToolResultPayload,
    extract_payload,
    format_tool_result,
    register_formatter,
)
from .synchronizer import PollingStatusSynchronizer, StatusSubscription

__all__ = [
    "APPROVAL_SENTINEL",
    "ApprovalController",
    "ApprovalFailure",
    "DEGRADED_RESULT_NOTICE",
    "FormattedResult",
    "InMemoryResultCache",
    "LoggingNotifier",
    "Notifier",
    "ParsedMessage",
    "PollingStatusSynchronizer",
    "RecoveredResult",
    "RecoveryChain",
    "RecoveryTier",
    "ResultCache",
    "SQLiteResultCache",
    "StatusSubscription",
    "ToolCallContext",
    "ToolResultPayload",
    "classify_failure",
    "clean_marker",
    "contains_approval_request",
    "display_tool_name",
    "extract_payload",
    "format_approval_marker",
    "format_tool_result",
    "parse_approval_markers",
    "register_formatter",
]
