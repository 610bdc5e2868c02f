"""API models for the toolgate FastAPI server."""

from .execution_state import CreateExecutionStateRequest, UpdateExecutionStateRequest

__all__ = [
    "CreateExecutionStateRequest",
    "UpdateExecutionStateRequest",
]
