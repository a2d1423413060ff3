"""Postboard main entrypoint.

- `serve`: run the Posts API under uvicorn
- `init-db`: create the database schema and exit

Environment is read from `.env` (and `.env.production` when present) before
settings are built.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import uvicorn
from dotenv import load_dotenv

from packages.common.config import load_settings
from packages.common.db import Database
from packages.common.errors import StorageUnavailable
from packages.common.logging import configure_logging

log = logging.getLogger("postboard")


async def _init_db() -> int:
    settings = load_settings()
    configure_logging(settings.LOG_LEVEL, service=settings.SERVICE_NAME)
    from services.posts import models  # noqa: F401  registers the posts table

    database = Database.from_settings(settings)
    try:
        await database.init_schema()
    except StorageUnavailable as e:
        log.error("schema creation failed: %s", e.detail)
        return 1
    finally:
        await database.dispose()
    log.info("schema ready")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(".env.production")
    load_dotenv(".env", override=True)

    ap = argparse.ArgumentParser(prog="postboard", description="Postboard posts service")
    sub = ap.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="auto-reload on code changes (dev only)")

    sub.add_parser("init-db", help="create database tables and exit")

    args = ap.parse_args(argv)
    if args.command == "init-db":
        return asyncio.run(_init_db())

    uvicorn.run(
        "services.posts.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
