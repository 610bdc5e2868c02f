"""Database engine module."""

from .engine import DatabaseEngine, get_db_engine

__all__ = ["DatabaseEngine", "get_db_engine"]
