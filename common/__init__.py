"""Common shared modules across the toolgate system."""

from .errors import (
    ConflictError,
    CorruptionError,
    InvalidTransitionError,
    MarkerParseError,
    RecordNotFoundError,
    ToolGateError,
    TransportError,
)

__all__ = [
    "ToolGateError",
    "MarkerParseError",
    "RecordNotFoundError",
    "InvalidTransitionError",
    "ConflictError",
    "CorruptionError",
    "TransportError",
]
