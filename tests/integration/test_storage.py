"""DatabaseManager lifecycle and the bootstrap-file store."""

import pytest
from sqlalchemy import text

from entity_memory.core.config import DatabaseSettings, Settings
from entity_memory.core.exceptions import StorageConnectionError
from entity_memory.memory.service import EntityMemoryService
from entity_memory.storage.bootstrap_files import BootstrapFileRepository
from entity_memory.storage.connection import DatabaseManager


def _settings(url: str) -> Settings:
    return Settings(database=DatabaseSettings(postgres_url=url))


class TestDatabaseManager:
    async def test_create_and_close(self, tmp_path):
        manager = await DatabaseManager.create(_settings(f"sqlite+aiosqlite:///{tmp_path / 'm.db'}"))
        async with manager.session_factory() as session:
            assert (await session.execute(text("SELECT 1"))).scalar_one() == 1

        await manager.close()
        with pytest.raises(StorageConnectionError):
            _ = manager.session_factory

    async def test_uninitialised_manager(self):
        with pytest.raises(StorageConnectionError):
            _ = DatabaseManager(_settings("sqlite+aiosqlite://")).session_factory

    async def test_bad_url_wrapped(self):
        with pytest.raises(StorageConnectionError):
            await DatabaseManager.create(_settings("nosuchdriver://x"))

    async def test_service_from_manager(self, tmp_path):
        settings = _settings(f"sqlite+aiosqlite:///{tmp_path / 'm.db'}")
        settings.memory.render_file_name = "CONTEXT.md"
        manager = await DatabaseManager.create(settings)
        try:
            service = EntityMemoryService.from_manager(manager, settings)
            assert service.settings.render_file_name == "CONTEXT.md"
            assert service.session_factory is manager.session_factory
        finally:
            await manager.close()


class TestBootstrapFileRepository:
    async def test_upsert_overwrites(self, db_session):
        repo = BootstrapFileRepository(db_session)
        await repo.upsert("t1", "MEMORY.md", "first")
        await repo.upsert("t1", "MEMORY.md", "second")
        assert await repo.get("t1", "MEMORY.md") == "second"

    async def test_keyed_by_tenant_and_name(self, db_session):
        repo = BootstrapFileRepository(db_session)
        await repo.upsert("t1", "MEMORY.md", "mine")
        assert await repo.get("t2", "MEMORY.md") is None
        assert await repo.get("t1", "SOUL.md") is None
