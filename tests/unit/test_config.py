"""Unit tests for configuration loading."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from entity_memory.core.config import MemorySettings, Settings, ensure_asyncpg_url, get_settings


class TestEnsureAsyncpgUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "postgresql://u:p@db/memory",
            "postgresql+psycopg2://u:p@db/memory",
            "postgresql+psycopg://u:p@db/memory",
        ],
    )
    def test_postgres_variants_normalised(self, url):
        assert ensure_asyncpg_url(url) == "postgresql+asyncpg://u:p@db/memory"

    def test_asyncpg_unchanged(self):
        url = "postgresql+asyncpg://u:p@db/memory"
        assert ensure_asyncpg_url(url) == url

    def test_sqlite_unchanged(self):
        url = "sqlite+aiosqlite:///tmp/memory.db"
        assert ensure_asyncpg_url(url) == url


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.memory.render_file_name == "MEMORY.md"
        assert settings.memory.render_episode_limit == 10
        assert settings.memory.ingest_max_attempts == 2
        assert settings.memory.max_evidence_entries == 50
        assert settings.raw_ingest.max_messages == 200
        assert settings.raw_ingest.max_total_chars == 50_000
        assert settings.raw_ingest.fallback_max_chars == 5000

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("MEMORY__MAX_EVIDENCE_ENTRIES", "5")
        monkeypatch.setenv("DATABASE__POSTGRES_URL", "postgresql://x:y@pg/mem")
        settings = get_settings()
        assert settings.memory.max_evidence_entries == 5
        assert settings.database.postgres_url == "postgresql://x:y@pg/mem"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_ingest_max_attempts_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            MemorySettings(ingest_max_attempts=0)
