"""Durable cache of the display text rendered for each tool call."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.engine import DatabaseEngine
from db.execution_models import ToolResultCacheModel
from store import with_retry

logger = logging.getLogger(__name__)


class ResultCache(ABC):
    """Display text keyed by ``(chat_id, tool_call_id)``."""

    @abstractmethod
    async def get(self, chat_id: str, tool_call_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def put(self, chat_id: str, tool_call_id: str, display_text: str) -> None:
        pass


class InMemoryResultCache(ResultCache):
    """Process-local cache, used when no database is available."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], str] = {}

    async def get(self, chat_id: str, tool_call_id: str) -> Optional[str]:
        return self._entries.get((chat_id, tool_call_id))

    async def put(self, chat_id: str, tool_call_id: str, display_text: str) -> None:
        self._entries[(chat_id, tool_call_id)] = display_text

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteResultCache(ResultCache):
    """Cache stored in the ``tool_result_cache`` table of the shared database."""

    def __init__(self, db_engine: DatabaseEngine):
        self.db_engine = db_engine
        self.async_session: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialization_lock = asyncio.Lock()

    async def _session(self) -> AsyncSession:
        async with self._initialization_lock:
            if not self.async_session:
                await self.db_engine.initialize()
                self.async_session = await self.db_engine.get_session_factory()
        return self.async_session()

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def get(self, chat_id: str, tool_call_id: str) -> Optional[str]:
        async with await self._session() as session:
            row = await session.get(ToolResultCacheModel, (chat_id, tool_call_id))
            return row.display_text if row else None

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def put(self, chat_id: str, tool_call_id: str, display_text: str) -> None:
        async with await self._session() as session:
            row = await session.get(ToolResultCacheModel, (chat_id, tool_call_id))
            now = datetime.utcnow()
            if row:
                row.display_text = display_text
                row.updated_at = now
            else:
                session.add(
                    ToolResultCacheModel(
                        chat_id=chat_id,
                        tool_call_id=tool_call_id,
                        display_text=display_text,
                        created_at=now,
                        updated_at=now,
                    )
                )
            await session.commit()
            logger.debug(f"💾 Cached display text for {tool_call_id} ({len(display_text)} chars)")
