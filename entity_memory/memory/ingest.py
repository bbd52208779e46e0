"""Transactional batch ingest: profile + episode + concerns + rendered view, all or nothing."""

import time
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import MemorySettings
from ..core.exceptions import StorageError, ValidationError
from ..core.schemas import (
    ConcernUpsert,
    EpisodeCreate,
    IngestRequest,
    IngestResult,
    ProfileData,
    ProfileWriteResult,
    RenderResult,
    VersionConflict,
)
from ..storage.bootstrap_files import BootstrapFileRepository
from ..storage.utils import is_lock_conflict
from ..utils.logging_config import get_logger
from ..utils.metrics import INGEST_LATENCY, INGEST_RETRIES, INGEST_TOTAL, RENDERS_TOTAL
from ..utils.timing import timed
from .concern_tracker import ConcernRepository
from .episode_log import EpisodeRepository
from .profile_store import ProfileRepository, merge_profile_updates, normalize_profile_updates
from .view_compiler import render

logger = get_logger(__name__)


def build_ingest_request(
    tenant_id: str,
    profile_updates: ProfileData | Mapping[str, Any] | None = None,
    episode: EpisodeCreate | Mapping[str, Any] | None = None,
    concerns: Sequence[ConcernUpsert | Mapping[str, Any]] | None = None,
    render: bool = True,
) -> IngestRequest:
    """Validate and normalise ingest input before any transaction is opened.

    Free-form profile dicts are folded into :class:`ProfileData`; episode and
    concern dicts may use camelCase or snake_case keys.
    """
    if not tenant_id or not tenant_id.strip():
        raise ValidationError("tenant_id is required")
    try:
        if isinstance(profile_updates, Mapping):
            profile_updates = normalize_profile_updates(profile_updates)
        return IngestRequest(
            profile_updates=profile_updates,
            episode=episode,
            concerns=list(concerns) if concerns is not None else None,
            render=render,
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid ingest input: {e}") from e


class IngestOrchestrator:
    """Runs one ingest inside a single transaction.

    The tenant's profile row is locked ``FOR UPDATE`` before the
    ``medical_facts`` merge, so concurrent ingests for one tenant serialize
    on it. A deadlock or lock-wait timeout restarts the whole transaction
    on a fresh session, up to ``ingest_max_attempts`` attempts in total.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: MemorySettings | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or MemorySettings()

    async def ingest(
        self,
        tenant_id: str,
        profile_updates: ProfileData | Mapping[str, Any] | None = None,
        episode: EpisodeCreate | Mapping[str, Any] | None = None,
        concerns: Sequence[ConcernUpsert | Mapping[str, Any]] | None = None,
        render: bool = True,
    ) -> IngestResult:
        request = build_ingest_request(tenant_id, profile_updates, episode, concerns, render)
        return await self.run(tenant_id, request)

    async def run(self, tenant_id: str, request: IngestRequest) -> IngestResult:
        """Execute a validated request with bounded lock-conflict retry."""
        start = time.perf_counter()
        max_attempts = self.settings.ingest_max_attempts
        attempt = 1
        try:
            with timed("ingest", warn_ms=self.settings.slow_ingest_warn_ms, tenant_id=tenant_id):
                while True:
                    try:
                        result = await self._run_once(tenant_id, request)
                        break
                    except DBAPIError as exc:
                        if attempt >= max_attempts or not is_lock_conflict(exc):
                            raise
                        INGEST_RETRIES.inc()
                        logger.warning(
                            "ingest_lock_conflict_retry",
                            tenant_id=tenant_id,
                            attempt=attempt,
                            error=str(exc.orig),
                        )
                        attempt += 1
        except Exception:
            INGEST_TOTAL.labels(status="failure").inc()
            logger.error("ingest_failed", tenant_id=tenant_id, attempt=attempt, exc_info=True)
            raise
        finally:
            INGEST_LATENCY.observe(time.perf_counter() - start)

        INGEST_TOTAL.labels(status="success").inc()
        logger.info(
            "ingest_completed",
            tenant_id=tenant_id,
            attempts=attempt,
            profile_version=result.profile.new_version if result.profile else None,
            episode_id=result.episode.id if result.episode else None,
            concern_count=len(result.concerns) if result.concerns is not None else 0,
            rendered=result.render.rendered if result.render else None,
        )
        return result

    async def _run_once(self, tenant_id: str, request: IngestRequest) -> IngestResult:
        result = IngestResult()
        async with self.session_factory() as session, session.begin():
            updates = request.profile_updates
            if updates is not None and updates.present_fields():
                result.profile = await self._write_profile(
                    ProfileRepository(session), tenant_id, updates
                )

            if request.episode is not None:
                result.episode = await EpisodeRepository(session).insert(tenant_id, request.episode)

            if request.concerns:
                concerns = ConcernRepository(session, self.settings.max_evidence_entries)
                result.concerns = [await concerns.upsert(tenant_id, c) for c in request.concerns]

            if request.render:
                result.render = await render_memory_file(session, tenant_id, self.settings)
        return result

    async def _write_profile(
        self,
        profiles: ProfileRepository,
        tenant_id: str,
        updates: ProfileData,
    ) -> ProfileWriteResult:
        current = await profiles.get(tenant_id, for_update=True)
        if current is None:
            if await profiles.insert_if_absent(
                tenant_id, merge_profile_updates(ProfileData(), updates)
            ):
                return ProfileWriteResult(updated=True, new_version=1)
            # Another first write committed in between; merge onto its row.
            current = await profiles.get(tenant_id, for_update=True)
            if current is None:
                raise StorageError(f"profile for tenant {tenant_id!r} conflicted on insert but is missing")

        outcome = await profiles.conditional_update(
            current, merge_profile_updates(current.data, updates)
        )
        if isinstance(outcome, VersionConflict):
            # The row is locked, so a mismatch means the backend ignored FOR UPDATE.
            raise StorageError(
                f"profile for tenant {tenant_id!r} changed while locked "
                f"(expected version {outcome.expected_version})"
            )
        return outcome


async def render_memory_file(
    session: AsyncSession,
    tenant_id: str,
    settings: MemorySettings,
) -> RenderResult:
    """Recompute the rendered view from what *session* can see and store it.

    Called inside the ingest transaction so the view includes that
    transaction's own uncommitted writes.
    """
    profile = await ProfileRepository(session).get(tenant_id)
    concerns = await ConcernRepository(session).get_active(tenant_id)
    episodes = await EpisodeRepository(session).get_recent(
        tenant_id, limit=settings.render_episode_limit
    )
    content = render(profile, concerns, episodes, truncate_chars=settings.episode_truncate_chars)
    if content is None:
        RENDERS_TOTAL.labels(rendered="false").inc()
        return RenderResult(rendered=False)

    await BootstrapFileRepository(session).upsert(tenant_id, settings.render_file_name, content)
    RENDERS_TOTAL.labels(rendered="true").inc()
    logger.debug("memory_file_rendered", tenant_id=tenant_id, chars=len(content))
    return RenderResult(rendered=True)
