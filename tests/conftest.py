"""Pytest fixtures shared by unit and integration tests."""

from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path

import pytest
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from entity_memory.core.config import MemorySettings, RawIngestSettings, get_settings
from entity_memory.core.enums import ConcernSeverity, ConcernStatus
from entity_memory.core.schemas import Concern, Episode, EvidenceEntry, Fact, Profile, ProfileData
from entity_memory.memory.service import EntityMemoryService
from entity_memory.storage.models import Base

# Load repo .env so DATABASE__POSTGRES_URL etc. reach integration tests.
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Auto-clear the settings LRU cache after each test to prevent pollution."""
    yield
    get_settings.cache_clear()


@pytest.fixture
async def sqlite_engine(tmp_path):
    """File-backed SQLite engine with all tables created. One database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'memory.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(sqlite_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session with an open transaction, rolled back after the test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def memory_settings() -> MemorySettings:
    return MemorySettings()


@pytest.fixture
def raw_ingest_settings() -> RawIngestSettings:
    return RawIngestSettings()


@pytest.fixture
def service(session_factory, memory_settings) -> EntityMemoryService:
    return EntityMemoryService(session_factory, memory_settings)


@pytest.fixture
def sample_profile() -> Profile:
    return Profile(
        tenant_id="t1",
        version=3,
        data=ProfileData(
            medical_facts=[Fact(fact="Born at 36 weeks"), Fact(fact="Allergic to peanuts")],
            baby_snapshot={"name": "Mia", "age_months": 4},
            feeding_profile={"method": "bottle", "notes": ""},
            next_actions=[Fact(fact="Book 6-month checkup")],
        ),
    )


@pytest.fixture
def sample_concern() -> Concern:
    seen = datetime(2026, 3, 14, 9, 30)
    return Concern(
        id=1,
        tenant_id="t1",
        concern_key="reflux",
        display_name="Reflux after feeds",
        severity=ConcernSeverity.HIGH,
        status=ConcernStatus.ACTIVE,
        mention_count=3,
        evidence=[EvidenceEntry(text="spits up", source="chat", date="2026-03-14")],
        first_seen_at=seen,
        last_seen_at=seen,
    )


@pytest.fixture
def sample_episode() -> Episode:
    return Episode(
        id=7,
        tenant_id="t1",
        episode_type="conversation",
        channel="whatsapp",
        content="Parent asked about night feeds",
        created_at=datetime(2026, 3, 15, 20, 0),
    )
