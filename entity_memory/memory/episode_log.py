"""Episode log repository - append-only, per-tenant event records."""

from datetime import datetime
from typing import Any, cast

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.schemas import Episode, EpisodeCreate, EpisodeWriteResult
from ..storage.models import MemoryEpisodeModel
from ..storage.utils import naive_utc, utc_now


class EpisodeRepository:
    """Append-only episode log. Episodes are immutable except for ``is_superseded``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, tenant_id: str, episode: EpisodeCreate) -> EpisodeWriteResult:
        """Append an episode. No dedup; the store assigns the id."""
        model = MemoryEpisodeModel(
            tenant_id=tenant_id,
            episode_type=episode.episode_type,
            channel=episode.channel,
            content=episode.content,
            meta=episode.metadata,
            is_superseded=False,
            created_at=utc_now(),
        )
        self.session.add(model)
        await self.session.flush()
        return EpisodeWriteResult(id=cast("int", model.id))

    async def get_recent(
        self,
        tenant_id: str,
        limit: int = 20,
        episode_type: str | None = None,
    ) -> list[Episode]:
        """Newest-first, non-superseded episodes, optionally of one type."""
        query = select(MemoryEpisodeModel).where(
            and_(
                MemoryEpisodeModel.tenant_id == tenant_id,
                MemoryEpisodeModel.is_superseded.is_(False),
            )
        )
        if episode_type:
            query = query.where(MemoryEpisodeModel.episode_type == episode_type)
        return await self._fetch(query, limit)

    async def get_since(
        self,
        tenant_id: str,
        since: datetime,
        limit: int = 100,
    ) -> list[Episode]:
        """Newest-first, non-superseded episodes with ``created_at >= since``."""
        query = select(MemoryEpisodeModel).where(
            and_(
                MemoryEpisodeModel.tenant_id == tenant_id,
                MemoryEpisodeModel.is_superseded.is_(False),
                MemoryEpisodeModel.created_at >= naive_utc(since),
            )
        )
        return await self._fetch(query, limit)

    async def mark_superseded(self, tenant_id: str, episode_id: int) -> bool:
        result = await self.session.execute(
            update(MemoryEpisodeModel)
            .where(
                and_(
                    MemoryEpisodeModel.tenant_id == tenant_id,
                    MemoryEpisodeModel.id == episode_id,
                    MemoryEpisodeModel.is_superseded.is_(False),
                )
            )
            .values(is_superseded=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def _fetch(self, query: Any, limit: int) -> list[Episode]:
        # id breaks ties between episodes written in the same instant
        query = query.order_by(
            MemoryEpisodeModel.created_at.desc(),
            MemoryEpisodeModel.id.desc(),
        ).limit(limit)
        result = await self.session.execute(query)
        return [self._to_schema(m) for m in result.scalars().all()]

    @staticmethod
    def _to_schema(model: MemoryEpisodeModel) -> Episode:
        """Convert ORM model to Episode schema."""
        return Episode(
            id=cast("int", model.id),
            tenant_id=cast("str", model.tenant_id),
            episode_type=cast("str", model.episode_type),
            channel=cast("str", model.channel),
            content=cast("str", model.content),
            metadata=cast("dict[str, Any] | None", model.meta),
            is_superseded=bool(model.is_superseded),
            created_at=cast("datetime", model.created_at),
        )
