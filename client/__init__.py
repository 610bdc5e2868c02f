"""Client side of the toolgate approval service."""

from .api_client import ToolGateAPIClient, kind_for_status

__all__ = ["ToolGateAPIClient", "kind_for_status"]
