"""Concern tracker: keyed, escalate-only issue records with accumulated evidence."""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.enums import (
    OPEN_CONCERN_STATUSES,
    SETTABLE_CONCERN_STATUSES,
    ConcernSeverity,
    ConcernStatus,
)
from ..core.exceptions import StorageError
from ..core.schemas import Concern, ConcernUpsert, ConcernWriteResult, EvidenceEntry
from ..storage.models import MemoryConcernModel
from ..storage.utils import dialect_insert, utc_now
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# ORDER BY helpers: lower value sorts first.
_SEVERITY_ORDER = case(
    {s.value: -s.rank for s in ConcernSeverity},
    value=MemoryConcernModel.severity,
    else_=0,
)
_STATUS_ORDER = case(
    {
        ConcernStatus.ACTIVE.value: 0,
        ConcernStatus.IMPROVING.value: 1,
        ConcernStatus.ESCALATED.value: 2,
        ConcernStatus.RESOLVED.value: 3,
    },
    value=MemoryConcernModel.status,
    else_=4,
)


def cap_evidence(evidence: list[dict[str, Any]], max_entries: int) -> list[dict[str, Any]]:
    """Keep the ``max_entries`` most recent evidence entries (0 keeps everything)."""
    if max_entries > 0 and len(evidence) > max_entries:
        return evidence[-max_entries:]
    return evidence


class ConcernRepository:
    """Concern rows for one session / transaction. Never commits.

    Each upsert locks only the one (tenant, concern_key) row it touches.
    """

    def __init__(self, session: AsyncSession, max_evidence_entries: int = 0):
        self.session = session
        self.max_evidence_entries = max_evidence_entries

    async def upsert(self, tenant_id: str, concern: ConcernUpsert) -> ConcernWriteResult:
        """Record one mention of a concern.

        New key: inserted active with one evidence entry. Known key: mention
        count +1, evidence appended, severity escalated to the max of stored
        and incoming, and a resolved concern is reopened.
        """
        now = utc_now()
        evidence = EvidenceEntry(
            text=concern.evidence_text,
            source=concern.source,
            date=now.date().isoformat(),
        ).model_dump()

        model = await self._get_for_update(tenant_id, concern.concern_key)
        if model is None:
            stmt = (
                dialect_insert(self.session, MemoryConcernModel)
                .values(
                    tenant_id=tenant_id,
                    concern_key=concern.concern_key,
                    display_name=concern.display_name,
                    severity=concern.severity.value,
                    status=ConcernStatus.ACTIVE.value,
                    mention_count=1,
                    evidence=[evidence],
                    first_seen_at=now,
                    last_seen_at=now,
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(
                    index_elements=[MemoryConcernModel.tenant_id, MemoryConcernModel.concern_key]
                )
                .returning(MemoryConcernModel.id)
            )
            new_id = (await self.session.execute(stmt)).scalar_one_or_none()
            if new_id is not None:
                return ConcernWriteResult(id=new_id, mention_count=1)
            # A concurrent first mention committed between our read and insert.
            model = await self._get_for_update(tenant_id, concern.concern_key)
            if model is None:
                raise StorageError(
                    f"concern {concern.concern_key!r} conflicted on insert but cannot be read back"
                )

        self._record_mention(model, concern.severity, evidence, now)
        await self.session.flush()
        return ConcernWriteResult(id=model.id, mention_count=model.mention_count)

    def _record_mention(
        self,
        model: MemoryConcernModel,
        severity: ConcernSeverity,
        evidence: dict[str, Any],
        now: datetime,
    ) -> None:
        model.mention_count = (model.mention_count or 0) + 1
        model.evidence = cap_evidence(
            [*(model.evidence or []), evidence], self.max_evidence_entries
        )
        model.severity = ConcernSeverity.max(ConcernSeverity(model.severity), severity).value
        model.last_seen_at = now
        model.updated_at = now
        if model.status == ConcernStatus.RESOLVED.value:
            model.status = ConcernStatus.ACTIVE.value
            model.resolved_at = None

    async def get_active(self, tenant_id: str) -> list[Concern]:
        """Open concerns, most severe first, then most recently seen."""
        q = (
            select(MemoryConcernModel)
            .where(
                and_(
                    MemoryConcernModel.tenant_id == tenant_id,
                    MemoryConcernModel.status.in_([s.value for s in OPEN_CONCERN_STATUSES]),
                )
            )
            .order_by(_SEVERITY_ORDER, MemoryConcernModel.last_seen_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(q)
        return [self._to_schema(m) for m in result.scalars().all()]

    async def get_all(self, tenant_id: str) -> list[Concern]:
        """Every concern, grouped by status (active, improving, escalated, resolved)."""
        q = (
            select(MemoryConcernModel)
            .where(MemoryConcernModel.tenant_id == tenant_id)
            .order_by(_STATUS_ORDER, _SEVERITY_ORDER, MemoryConcernModel.last_seen_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(q)
        return [self._to_schema(m) for m in result.scalars().all()]

    async def update_status(
        self,
        tenant_id: str,
        concern_key: str,
        status: ConcernStatus | str,
    ) -> int:
        """Set an explicit status. Returns rows updated (0 or 1).

        Only improving, resolved and escalated are accepted; anything else
        is ignored and reports 0.
        """
        try:
            target = ConcernStatus(status)
        except ValueError:
            target = None
        if target not in SETTABLE_CONCERN_STATUSES:
            logger.info(
                "concern_status_rejected",
                tenant_id=tenant_id,
                concern_key=concern_key,
                status=str(status),
            )
            return 0

        now = utc_now()
        result = await self.session.execute(
            update(MemoryConcernModel)
            .where(
                and_(
                    MemoryConcernModel.tenant_id == tenant_id,
                    MemoryConcernModel.concern_key == concern_key,
                )
            )
            .values(
                status=target.value,
                resolved_at=now if target is ConcernStatus.RESOLVED else None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _get_for_update(self, tenant_id: str, concern_key: str) -> MemoryConcernModel | None:
        result = await self.session.execute(
            select(MemoryConcernModel)
            .where(
                and_(
                    MemoryConcernModel.tenant_id == tenant_id,
                    MemoryConcernModel.concern_key == concern_key,
                )
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_schema(model: MemoryConcernModel) -> Concern:
        return Concern(
            id=model.id,
            tenant_id=model.tenant_id,
            concern_key=model.concern_key,
            display_name=model.display_name,
            severity=ConcernSeverity(model.severity),
            status=ConcernStatus(model.status),
            mention_count=model.mention_count,
            evidence=[EvidenceEntry(**e) for e in (model.evidence or [])],
            first_seen_at=model.first_seen_at,
            last_seen_at=model.last_seen_at,
            resolved_at=model.resolved_at,
            followup_due=model.followup_due,
        )
