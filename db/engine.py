"""Async SQLite engine backing the tool execution state store."""

import logging
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import event, func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config import DB_PATH

logger = logging.getLogger(__name__)

# Applied on every new DBAPI connection; WAL lets the poller read while a command writes
CONNECTION_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA busy_timeout = 30000",
)


def _apply_pragmas(dbapi_conn: Any, connection_record: Any) -> None:
    cursor = dbapi_conn.cursor()
    try:
        for pragma in CONNECTION_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


class DatabaseEngine:
    """Lazily builds the aiosqlite engine and creates the execution state schema.

    One instance is shared by the server store and the result cache so that
    both see the same file and the same session factory.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else DB_PATH
        self._async_engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False
        logger.debug(f"🔍 Execution state database at {self.db_path}")

    @property
    def url(self) -> str:
        return f"sqlite+aiosqlite:///{self.db_path}"

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def get_async_engine(self) -> AsyncEngine:
        """Return the engine, creating it on first use."""
        if self._async_engine is None:
            self._async_engine = create_async_engine(
                self.url,
                echo=False,
                poolclass=NullPool,
                connect_args={"check_same_thread": False, "timeout": 30.0},
            )
            event.listen(self._async_engine.sync_engine, "connect", _apply_pragmas)
            logger.debug(f"🔧 Engine created for {self.url}")
        return self._async_engine

    async def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            engine = await self.get_async_engine()
            self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        return self._session_factory

    async def initialize(self) -> None:
        """Create the database file and the execution state tables if missing.

        Safe to call repeatedly; only the first call touches the schema.
        """
        if self._initialized:
            return

        is_new = not self.db_path.exists()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(
            f"{'🆕 Creating' if is_new else '📂 Opening'} execution state database: {self.db_path}"
        )

        # Registers the tables on Base.metadata
        from db.base import Base
        from db.execution_models import ToolExecutionStateModel, ToolResultCacheModel  # noqa: F401

        engine = await self.get_async_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            check = (await conn.execute(text("PRAGMA quick_check"))).scalar()
            if check != "ok":
                raise RuntimeError(f"Execution state database is corrupt: {check}")

        self._initialized = True
        logger.info("✅ Execution state schema ready")

    async def check_health(self) -> dict[str, Any]:
        """Report whether the store file is present and answering queries."""
        report: dict[str, Any] = {
            "healthy": self.db_path.exists(),
            "database_path": str(self.db_path),
            "database_size_mb": 0,
            "errors": [],
        }
        if not report["healthy"]:
            report["errors"].append("Database file does not exist")
            return report

        report["database_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)
        if self._async_engine is None:
            return report

        from db.execution_models import ToolExecutionStateModel

        try:
            factory = await self.get_session_factory()
            async with factory() as session:
                tables = await session.execute(
                    text("SELECT COUNT(*) FROM sqlite_master WHERE type='table'")
                )
                report["table_count"] = tables.scalar()
                rows = await session.execute(
                    select(func.count()).select_from(ToolExecutionStateModel)
                )
                report["record_count"] = rows.scalar()
        except Exception as e:
            report["healthy"] = False
            report["errors"].append(f"Health check error: {e}")
            logger.error(f"❌ Execution state database unhealthy: {e}", exc_info=True)

        return report

    async def close(self) -> None:
        if self._async_engine is not None:
            await self._async_engine.dispose()
            logger.debug("🔌 Execution state engine disposed")
        self._async_engine = None
        self._session_factory = None
        self._initialized = False


_default_engine: Optional[DatabaseEngine] = None


def get_db_engine() -> DatabaseEngine:
    """Process-wide engine at the configured DB_PATH."""
    global _default_engine
    if _default_engine is None:
        _default_engine = DatabaseEngine()
    return _default_engine
