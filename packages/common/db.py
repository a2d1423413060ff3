"""Async SQLAlchemy engine and scoped sessions.

`Database.session_scope()` hands out one `AsyncSession` inside a transaction
for the duration of a single operation: committed on success, rolled back on
any error, closed on every exit path. Connection-level failures are reported
as `StorageUnavailable`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import Settings
from .errors import StorageUnavailable

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Database:
    """Owns the engine (connection pool) and the session factory."""

    def __init__(self, url: str, *, echo: bool = False, **engine_kw) -> None:
        self.url = url
        self.engine = create_async_engine(url, echo=echo, **engine_kw)
        self._sessions = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_settings(cls, s: Settings) -> "Database":
        """Build a pooled engine from application settings."""
        kw = {}
        if not s.database_url.startswith("sqlite"):
            kw.update(pool_size=s.DB_POOL_SIZE, pool_pre_ping=True)
        return cls(s.database_url, echo=s.DB_ECHO, **kw)

    async def init_schema(self) -> None:
        """Create all tables (safe to call multiple times)."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OperationalError, InterfaceError, OSError) as e:
            raise StorageUnavailable(f"schema creation failed: {e}") from e

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """Yield a session bound to one transaction; release it unconditionally."""
        try:
            async with self._sessions() as session:
                async with session.begin():
                    yield session
        except (OperationalError, InterfaceError, OSError) as e:
            raise StorageUnavailable(f"database unavailable: {e}") from e

    async def ping(self) -> None:
        """Run `SELECT 1`; raise `StorageUnavailable` if the database is unreachable."""
        async with self.session_scope() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """Close pooled connections."""
        await self.engine.dispose()
        log.info("database engine disposed")
