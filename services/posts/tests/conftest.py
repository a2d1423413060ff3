"""Shared fixtures for the Posts service tests.

SQLite (aiosqlite) stands in for PostgreSQL: it evaluates
`UPDATE ... SET score = score + 1 ... RETURNING` the same way. The database
is a file under `tmp_path` and every session checks out its own connection
from the pool, so concurrent votes really race across connections; the
SQLite busy timeout serialises their writes.

Set `POSTBOARD_TEST_PG_DSN` to also run the concurrency checks on PostgreSQL.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import AsyncAdaptedQueuePool

from packages.common.config import Settings
from packages.common.db import Database
from packages.common.storage import InMemoryBlobStore
from services.posts.app import create_app
from services.posts.service import PostService

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 13


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENV="dev",
        POSTGRES_DSN="sqlite+aiosqlite://",
        BLOB_BACKEND="memory",
        MAX_IMAGE_BYTES=1024,
        LOG_LEVEL="WARNING",
    )


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'posts.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=8,
        max_overflow=8,
        connect_args={"timeout": 30},
    )
    await db.init_schema()
    yield db
    await db.dispose()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def service(database, blobs, settings) -> PostService:
    return PostService(database, blobs, settings.MAX_IMAGE_BYTES)


@pytest.fixture
def app(settings, database, blobs):
    return create_app(settings, database=database, blob_store=blobs)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
