"""FastAPI application serving approval commands and execution state."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from db import DatabaseEngine, get_db_engine
from store import SQLiteExecutionStateStore
from telemetry import init_telemetry
from tools.registry import ToolExecutor

from .routes.approval import approval_router
from .routes.tool_execution_state import execution_state_router

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


def _tools_component(executor: Optional[ToolExecutor]) -> dict[str, Any]:
    if executor is None:
        return {"status": "unavailable", "count": 0}
    return {
        "status": "healthy" if executor.is_active else "unavailable",
        "count": len(executor.tools),
    }


async def _database_component(engine: DatabaseEngine) -> dict[str, Any]:
    try:
        report = await engine.check_health()
    except Exception as e:
        logger.error(f"❌ Database health check failed: {e}", exc_info=True)
        return {"status": "error", "error": str(e)}
    return {
        "status": "healthy" if report["healthy"] else "unhealthy",
        "path": report["database_path"],
        "size_mb": report["database_size_mb"],
        "table_count": report.get("table_count", 0),
        "errors": report["errors"],
    }


def create_app(
    db_engine: Optional[DatabaseEngine] = None, executor: Optional[ToolExecutor] = None
) -> FastAPI:
    """Build the approval service.

    Args:
        db_engine: Engine for the execution state file, the process default when omitted
        executor: Runs tool calls once they are approved
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = db_engine or get_db_engine()
        store = SQLiteExecutionStateStore(engine)
        await store.initialize()

        try:
            init_telemetry(service_name="toolgate-api")
        except Exception as e:
            logger.warning(f"⚠️ Tracing disabled: {e}")

        app.state.db_engine = engine
        app.state.store = store
        app.state.executor = executor or ToolExecutor()
        logger.info(f"🚀 Approval service up with {len(app.state.executor.tools)} gated tools")

        try:
            yield
        finally:
            await engine.close()
            logger.info("👋 Approval service stopped")

    app = FastAPI(
        title="Toolgate API",
        description="Approval gate and execution state for side-effecting tool calls",
        version=API_VERSION,
        lifespan=lifespan,
    )

    # Chat UIs call from arbitrary local origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"❌ {request.method} {request.url.path} failed: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "The approval service hit an unexpected error.",
                "error_type": type(exc).__name__,
                "path": request.url.path,
            },
        )

    app.include_router(approval_router, prefix="/api", tags=["approval"])
    app.include_router(execution_state_router, prefix="/api", tags=["execution-state"])

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"message": "Toolgate API", "version": API_VERSION, "status": "running"}

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Report tool availability and store reachability; any failing part marks the service degraded."""
        engine = getattr(request.app.state, "db_engine", None) or get_db_engine()
        components = {
            "tools": _tools_component(getattr(request.app.state, "executor", None)),
            "database": await _database_component(engine),
        }
        degraded = any(part["status"] != "healthy" for part in components.values())
        return {
            "status": "degraded" if degraded else "healthy",
            "timestamp": datetime.now().isoformat(),
            "components": components,
        }

    return app
