#!/usr/bin/env python3
"""Run the toolgate approval service."""

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import uvicorn
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "./db/toolgate.db"
DEFAULT_PORT = 8080


def configure_logging(level: int = logging.DEBUG) -> None:
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    # aiosqlite logs every cursor call at DEBUG
    logging.getLogger("aiosqlite").setLevel(logging.INFO)


def _exit_on_signal(sig: Any, frame: Any) -> None:
    logger.info(f"🛑 Received signal {sig}, stopping approval service")
    sys.exit(0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Approval gate and execution state service for tool calls"
    )
    parser.add_argument(
        "--db-path",
        default=os.getenv("TOOLGATE_DB_PATH", DEFAULT_DB_PATH),
        help=f"SQLite file holding execution state (default: {DEFAULT_DB_PATH})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("TOOLGATE_PORT", str(DEFAULT_PORT))),
        help=f"HTTP port (default: {DEFAULT_PORT})",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    load_dotenv()
    configure_logging()
    args = build_parser().parse_args(argv)

    db_path = Path(args.db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # config reads this at import time
    os.environ["TOOLGATE_DB_PATH"] = str(db_path)

    from api.server import create_app
    from db import DatabaseEngine

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _exit_on_signal)

    logger.info(f"🚀 Approval service on http://{args.host}:{args.port} (state: {db_path})")
    uvicorn.run(
        create_app(db_engine=DatabaseEngine(db_path)),
        host=args.host,
        port=args.port,
        log_level="debug",
    )


if __name__ == "__main__":
    main()
