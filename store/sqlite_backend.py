"""SQLite implementation of the tool execution state store."""

import asyncio
import logging
import uuid
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Coroutine, Optional, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from common.errors import InvalidTransitionError, RecordNotFoundError
from common.models import ExecutionRecord, ExecutionStatus, is_valid_transition
from db.engine import DatabaseEngine
from db.execution_models import ToolExecutionStateModel

from .api import QueryableExecutionStateStore
from .params import normalize_tool_params

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_retry(
    max_attempts: int = 3, backoff_factor: float = 0.1
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Decorator to retry database operations on transient failures."""

    def decorator(
        func: Callable[..., Coroutine[Any, Any, T]],
    ) -> Callable[..., Coroutine[Any, Any, T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: Optional[Exception] = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    last_exception = e
                    if "database is locked" in str(e):
                        wait_time = min(5.0, backoff_factor * (2**attempt))  # Cap at 5 seconds
                        logger.warning(
                            f"Database locked, retrying in {wait_time}s "
                            f"(attempt {attempt + 1}/{max_attempts})"
                        )
                        await asyncio.sleep(wait_time)
                    else:
                        raise

            logger.error(f"All {max_attempts} attempts failed for {func.__name__}")
            if last_exception:
                raise last_exception
            raise RuntimeError("No exception saved but all retries failed")

        return wrapper

    return decorator


def _to_record(row: ToolExecutionStateModel) -> ExecutionRecord:
    return ExecutionRecord(
        tool_call_id=row.tool_call_id,
        chat_id=row.chat_id,
        message_id=row.message_id,
        tool_name=row.tool_name,
        tool_params=row.tool_params or {},
        status=ExecutionStatus(row.status),
        result=row.tool_result,
        error_message=row.error_message,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SQLiteExecutionStateStore(QueryableExecutionStateStore):
    """SQLite execution state store with idempotent creation."""

    def __init__(self, db_engine: DatabaseEngine):
        """Initialize SQLite store.

        Args:
            db_engine: DatabaseEngine instance owning the schema
        """
        self.db_engine = db_engine
        self.async_session: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialization_lock = asyncio.Lock()
        self._is_initialized = False

    async def initialize(self) -> None:
        """Initialize database connection."""
        async with self._initialization_lock:
            if self._is_initialized:
                logger.debug("SQLiteExecutionStateStore already initialized, skipping")
                return

            await self.db_engine.initialize()
            self.async_session = await self.db_engine.get_session_factory()
            self._is_initialized = True
            logger.info("SQLite execution state store initialized")

    def _session(self) -> AsyncSession:
        if not self.async_session:
            raise RuntimeError("SQLite execution state store not initialized")
        return self.async_session()

    async def _load(self, session: AsyncSession, tool_call_id: str) -> Optional[ToolExecutionStateModel]:
        result = await session.execute(
            select(ToolExecutionStateModel).where(
                ToolExecutionStateModel.tool_call_id == tool_call_id
            )
        )
        return result.scalar_one_or_none()

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def get(self, tool_call_id: str) -> Optional[ExecutionRecord]:
        async with self._session() as session:
            row = await self._load(session, tool_call_id)
            return _to_record(row) if row else None

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def create(
        self,
        chat_id: str,
        message_id: int,
        tool_call_id: str,
        tool_name: str,
        tool_params: Optional[dict[str, Any]] = None,
    ) -> ExecutionRecord:
        existing = await self.get(tool_call_id)
        if existing:
            logger.debug(f"Execution state for {tool_call_id} already exists, returning it")
            return existing

        params = normalize_tool_params(tool_name, tool_params or {})
        logger.info(f"💾 Creating execution state: tool_call_id={tool_call_id}, tool={tool_name}")

        now = datetime.utcnow()
        async with self._session() as session:
            row = ToolExecutionStateModel(
                id=str(uuid.uuid4()),
                tool_call_id=tool_call_id,
                chat_id=chat_id,
                message_id=message_id,
                tool_name=tool_name,
                tool_params=params,
                status=ExecutionStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent create won the race; converge on its row
                await session.rollback()
                logger.info(f"Concurrent create for {tool_call_id}, reading existing record")
            else:
                await session.refresh(row)
                return _to_record(row)

        winner = await self.get(tool_call_id)
        if not winner:
            raise RecordNotFoundError(tool_call_id)
        return winner

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def update(
        self,
        tool_call_id: str,
        status: ExecutionStatus,
        result: Optional[Any] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionRecord:
        async with self._session() as session:
            row = await self._load(session, tool_call_id)
            if not row:
                raise RecordNotFoundError(tool_call_id)

            current = ExecutionStatus(row.status)
            if not is_valid_transition(current, status):
                raise InvalidTransitionError(tool_call_id, current, status)

            row.status = status.value
            if result is not None:
                row.tool_result = result
            if error_message is not None:
                row.error_message = error_message
            row.updated_at = datetime.utcnow()

            await session.commit()
            await session.refresh(row)
            logger.info(f"🔄 Execution state {tool_call_id}: {current.value} -> {status.value}")
            return _to_record(row)

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def compare_and_set(
        self, tool_call_id: str, expected: ExecutionStatus, status: ExecutionStatus
    ) -> ExecutionRecord:
        if not is_valid_transition(expected, status):
            raise InvalidTransitionError(tool_call_id, expected, status)

        async with self._session() as session:
            result = await session.execute(
                update(ToolExecutionStateModel)
                .where(
                    ToolExecutionStateModel.tool_call_id == tool_call_id,
                    ToolExecutionStateModel.status == expected.value,
                )
                .values(status=status.value, updated_at=datetime.utcnow())
            )
            await session.commit()

            if result.rowcount == 0:
                row = await self._load(session, tool_call_id)
                if not row:
                    raise RecordNotFoundError(tool_call_id)
                raise InvalidTransitionError(tool_call_id, ExecutionStatus(row.status), status)

            row = await self._load(session, tool_call_id)
            logger.info(f"🔄 Execution state {tool_call_id}: {expected.value} -> {status.value}")
            return _to_record(row)

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def update_params(
        self, tool_call_id: str, tool_params: dict[str, Any]
    ) -> ExecutionRecord:
        async with self._session() as session:
            row = await self._load(session, tool_call_id)
            if not row:
                raise RecordNotFoundError(tool_call_id)

            row.tool_params = normalize_tool_params(row.tool_name, tool_params)
            row.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(row)
            logger.debug(f"Updated {len(tool_params)} parameters for {tool_call_id}")
            return _to_record(row)

    async def upsert(
        self,
        chat_id: str,
        message_id: int,
        tool_call_id: str,
        tool_name: str,
        tool_params: Optional[dict[str, Any]] = None,
        status: ExecutionStatus = ExecutionStatus.PENDING,
        result: Optional[Any] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionRecord:
        record = await self.create(chat_id, message_id, tool_call_id, tool_name, tool_params)
        if record.status == status and result is None and error_message is None:
            return record
        return await self.update(tool_call_id, status, result=result, error_message=error_message)

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def list_by_chat(self, chat_id: str) -> list[ExecutionRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(ToolExecutionStateModel)
                .where(ToolExecutionStateModel.chat_id == chat_id)
                .order_by(ToolExecutionStateModel.created_at, ToolExecutionStateModel.id)
            )
            return [_to_record(row) for row in result.scalars().all()]

    @with_retry(max_attempts=3, backoff_factor=0.1)
    async def list_by_message(self, chat_id: str, message_id: int) -> list[ExecutionRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(ToolExecutionStateModel)
                .where(
                    ToolExecutionStateModel.chat_id == chat_id,
                    ToolExecutionStateModel.message_id == message_id,
                )
                .order_by(ToolExecutionStateModel.created_at, ToolExecutionStateModel.id)
            )
            return [_to_record(row) for row in result.scalars().all()]
