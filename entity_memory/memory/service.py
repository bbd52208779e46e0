"""Entity memory service: every inbound operation behind one object."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import MemorySettings, Settings, get_settings
from ..core.enums import ConcernStatus
from ..core.exceptions import ValidationError
from ..core.schemas import (
    Concern,
    ConcernUpsert,
    ConcernWriteResult,
    Episode,
    EpisodeCreate,
    EpisodeWriteResult,
    IngestResult,
    Profile,
    ProfileData,
    ProfileWriteResult,
    RenderResult,
    StatusUpdateResult,
)
from ..storage.bootstrap_files import BootstrapFileRepository
from ..storage.connection import DatabaseManager
from .concern_tracker import ConcernRepository
from .episode_log import EpisodeRepository
from .ingest import IngestOrchestrator, render_memory_file
from .profile_store import ProfileRepository, normalize_profile_updates


class EntityMemoryService:
    """Per-tenant profile, episode and concern operations.

    Every method runs in its own short transaction. :meth:`ingest` is the
    only multi-entity atomic write; the single-entity methods are for read
    paths and callers that do not need that guarantee.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: MemorySettings | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or MemorySettings()
        self.orchestrator = IngestOrchestrator(session_factory, self.settings)

    @classmethod
    def from_manager(
        cls,
        db_manager: DatabaseManager,
        settings: Settings | None = None,
    ) -> "EntityMemoryService":
        settings = settings or get_settings()
        return cls(db_manager.session_factory, settings.memory)

    # ── Ingest ──────────────────────────────────────────────────────

    async def ingest(
        self,
        tenant_id: str,
        profile_updates: ProfileData | Mapping[str, Any] | None = None,
        episode: EpisodeCreate | Mapping[str, Any] | None = None,
        concerns: Sequence[ConcernUpsert | Mapping[str, Any]] | None = None,
        render: bool = True,
    ) -> IngestResult:
        return await self.orchestrator.ingest(
            tenant_id,
            profile_updates=profile_updates,
            episode=episode,
            concerns=concerns,
            render=render,
        )

    # ── Profile ─────────────────────────────────────────────────────

    async def get_profile(self, tenant_id: str) -> Profile | None:
        async with self.session_factory() as session:
            return await ProfileRepository(session).get(tenant_id)

    async def upsert_profile(
        self,
        tenant_id: str,
        updates: ProfileData | Mapping[str, Any],
        expected_version: int,
    ) -> ProfileWriteResult:
        """Optimistic merge-patch of the profile.

        ``expected_version`` 0 means "no profile yet". A stale version is
        retried once against the freshly read row; ``updated`` is False only
        when that retry loses too.
        """
        if isinstance(updates, Mapping):
            updates = _validated(normalize_profile_updates, updates)
        async with self.session_factory() as session, session.begin():
            return await ProfileRepository(session).upsert(tenant_id, updates, expected_version)

    # ── Episodes ────────────────────────────────────────────────────

    async def insert_episode(
        self,
        tenant_id: str,
        episode: EpisodeCreate | Mapping[str, Any],
    ) -> EpisodeWriteResult:
        if isinstance(episode, Mapping):
            episode = _validated(EpisodeCreate.model_validate, episode)
        async with self.session_factory() as session, session.begin():
            return await EpisodeRepository(session).insert(tenant_id, episode)

    async def get_recent_episodes(
        self,
        tenant_id: str,
        limit: int | None = None,
        episode_type: str | None = None,
    ) -> list[Episode]:
        async with self.session_factory() as session:
            return await EpisodeRepository(session).get_recent(
                tenant_id,
                limit=self.settings.recent_episode_limit if limit is None else limit,
                episode_type=episode_type,
            )

    async def get_episodes_since(
        self,
        tenant_id: str,
        since: datetime,
        limit: int | None = None,
    ) -> list[Episode]:
        async with self.session_factory() as session:
            return await EpisodeRepository(session).get_since(
                tenant_id,
                since,
                limit=self.settings.episodes_since_limit if limit is None else limit,
            )

    async def mark_episode_superseded(self, tenant_id: str, episode_id: int) -> bool:
        async with self.session_factory() as session, session.begin():
            return await EpisodeRepository(session).mark_superseded(tenant_id, episode_id)

    # ── Concerns ────────────────────────────────────────────────────

    async def upsert_concern(
        self,
        tenant_id: str,
        concern: ConcernUpsert | Mapping[str, Any],
    ) -> ConcernWriteResult:
        if isinstance(concern, Mapping):
            concern = _validated(ConcernUpsert.model_validate, concern)
        async with self.session_factory() as session, session.begin():
            repo = ConcernRepository(session, self.settings.max_evidence_entries)
            return await repo.upsert(tenant_id, concern)

    async def get_active_concerns(self, tenant_id: str) -> list[Concern]:
        async with self.session_factory() as session:
            return await ConcernRepository(session).get_active(tenant_id)

    async def get_all_concerns(self, tenant_id: str) -> list[Concern]:
        async with self.session_factory() as session:
            return await ConcernRepository(session).get_all(tenant_id)

    async def update_concern_status(
        self,
        tenant_id: str,
        concern_key: str,
        status: ConcernStatus | str,
    ) -> StatusUpdateResult:
        async with self.session_factory() as session, session.begin():
            updated = await ConcernRepository(session).update_status(tenant_id, concern_key, status)
        return StatusUpdateResult(updated=updated)

    # ── Rendered view ───────────────────────────────────────────────

    async def render_memory_file(self, tenant_id: str) -> RenderResult:
        """Recompute and store the rendered view outside of any ingest."""
        async with self.session_factory() as session, session.begin():
            return await render_memory_file(session, tenant_id, self.settings)

    async def get_memory_file(self, tenant_id: str) -> str | None:
        async with self.session_factory() as session:
            return await BootstrapFileRepository(session).get(
                tenant_id, self.settings.render_file_name
            )


def _validated(build: Any, raw: Mapping[str, Any]) -> Any:
    try:
        return build(dict(raw))
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e
