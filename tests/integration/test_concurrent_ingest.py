"""Concurrent writers against PostgreSQL: row locks, no lost updates, lock-timeout retry."""

import asyncio

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from entity_memory.core.config import MemorySettings
from entity_memory.memory.service import EntityMemoryService
from entity_memory.storage.utils import is_lock_conflict

_CONCERN = {
    "concernKey": "reflux",
    "displayName": "Reflux after feeds",
    "severity": "medium",
    "evidenceText": "spits up",
    "source": "chat",
}


@pytest.fixture
def pg_service(pg_session_factory) -> EntityMemoryService:
    return EntityMemoryService(pg_session_factory, MemorySettings())


class TestConcurrentIngest:
    async def test_concurrent_fact_additions_are_not_lost(self, pg_service):
        await pg_service.ingest("t1", profile_updates={"medical_facts": ["seed"]})

        facts = [f"fact {i}" for i in range(8)]
        results = await asyncio.gather(
            *(pg_service.ingest("t1", profile_updates={"medical_facts": [f]}) for f in facts)
        )

        profile = await pg_service.get_profile("t1")
        stored = [f.fact for f in profile.data.medical_facts]
        assert stored[0] == "seed"
        assert sorted(stored[1:]) == sorted(facts)
        assert profile.version == 1 + len(facts)
        assert sorted(r.profile.new_version for r in results) == list(range(2, 2 + len(facts)))

    async def test_concurrent_first_writes(self, pg_service):
        results = await asyncio.gather(
            pg_service.ingest("fresh", profile_updates={"medical_facts": ["A"]}),
            pg_service.ingest("fresh", profile_updates={"medical_facts": ["B"]}),
        )

        profile = await pg_service.get_profile("fresh")
        assert sorted(f.fact for f in profile.data.medical_facts) == ["A", "B"]
        assert sorted(r.profile.new_version for r in results) == [1, 2]

    async def test_concurrent_concern_mentions_all_counted(self, pg_service):
        await asyncio.gather(*(pg_service.ingest("t1", concerns=[_CONCERN]) for _ in range(6)))

        (concern,) = await pg_service.get_all_concerns("t1")
        assert concern.mention_count == 6
        assert len(concern.evidence) == 6

    async def test_tenants_do_not_block_each_other(self, pg_service, pg_session_factory):
        await pg_service.ingest("locked", profile_updates={"medical_facts": ["A"]})

        async with pg_session_factory() as holder, holder.begin():
            await holder.execute(
                text("SELECT id FROM memory_profiles WHERE tenant_id = 'locked' FOR UPDATE")
            )
            result = await asyncio.wait_for(
                pg_service.ingest("other", profile_updates={"medical_facts": ["B"]}), timeout=5
            )
        assert result.profile.new_version == 1


class TestLockTimeout:
    async def test_lock_timeout_retried_then_surfaced(
        self, postgres_url, pg_engine, pg_session_factory
    ):
        await EntityMemoryService(pg_session_factory).ingest(
            "t1", profile_updates={"medical_facts": ["A"]}
        )
        impatient = create_async_engine(
            postgres_url, connect_args={"server_settings": {"lock_timeout": "200ms"}}
        )
        service = EntityMemoryService(
            async_sessionmaker(impatient, class_=AsyncSession, expire_on_commit=False),
            MemorySettings(ingest_max_attempts=2),
        )
        retries_before = REGISTRY.get_sample_value("entity_memory_ingest_retries_total") or 0.0

        try:
            async with pg_session_factory() as holder, holder.begin():
                await holder.execute(
                    text("SELECT id FROM memory_profiles WHERE tenant_id = 't1' FOR UPDATE")
                )
                with pytest.raises(DBAPIError) as excinfo:
                    await service.ingest("t1", profile_updates={"medical_facts": ["B"]})
        finally:
            await impatient.dispose()

        assert is_lock_conflict(excinfo.value)
        assert REGISTRY.get_sample_value("entity_memory_ingest_retries_total") == retries_before + 1
        profile = await EntityMemoryService(pg_session_factory).get_profile("t1")
        assert [f.fact for f in profile.data.medical_facts] == ["A"]
