"""Integration test fixtures. Every test here is marked ``integration``.

Most tests use the SQLite engine from the root conftest. The PostgreSQL
fixtures below are for row-lock and concurrency behaviour. With USE_ENV_DB=1,
DATABASE__POSTGRES_URL from env is used (e.g. docker-compose). Otherwise a
Testcontainers Postgres is started once per module. Postgres tests are skipped
when neither is available.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Generator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from entity_memory.core.config import ensure_asyncpg_url, get_settings
from entity_memory.storage.models import Base

try:
    from testcontainers.postgres import PostgresContainer

    HAS_TESTCONTAINERS = True
except ImportError:
    HAS_TESTCONTAINERS = False


def pytest_collection_modifyitems(items):
    for item in items:
        if "tests/integration" in str(item.fspath).replace(os.sep, "/"):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="module")
def postgres_url() -> Generator[str, None, None]:
    """Connection URL for a PostgreSQL that tests may create tables in."""
    if os.environ.get("USE_ENV_DB"):
        yield ensure_asyncpg_url(get_settings().database.postgres_url)
        return
    if not HAS_TESTCONTAINERS:
        pytest.skip("testcontainers not installed and USE_ENV_DB not set")
    try:
        container = PostgresContainer("postgres:16-alpine")
        container.start()
    except Exception as e:  # Docker not reachable
        pytest.skip(f"could not start PostgreSQL container: {e}")
    try:
        yield ensure_asyncpg_url(container.get_connection_url())
    finally:
        container.stop()


@pytest.fixture
async def pg_engine(postgres_url) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh tables per test; dropped afterwards."""
    engine = create_async_engine(postgres_url, pool_pre_ping=True, pool_size=10)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def pg_session_factory(pg_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(pg_engine, class_=AsyncSession, expire_on_commit=False)
