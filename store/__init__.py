"""Execution state store interface and implementations."""

from .api import ExecutionStateStore, QueryableExecutionStateStore
from .params import normalize_tool_params
from .sqlite_backend import SQLiteExecutionStateStore, with_retry

__all__ = [
    "ExecutionStateStore",
    "QueryableExecutionStateStore",
    "SQLiteExecutionStateStore",
    "normalize_tool_params",
    "with_retry",
]
