"""Versioned profile store with merge-patch updates and optimistic concurrency."""

import json
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.schemas import (
    PROFILE_FIELDS,
    Fact,
    Profile,
    ProfileData,
    ProfileWriteResult,
    VersionConflict,
)
from ..storage.models import MemoryProfileModel
from ..storage.utils import dialect_insert, utc_now
from ..utils.logging_config import get_logger
from ..utils.metrics import PROFILE_CONFLICTS

logger = get_logger(__name__)


def describe_value(value: Any) -> str:
    """Human-readable text for a JSON value (compact JSON for objects and arrays)."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def normalize_profile_updates(raw: Mapping[str, Any]) -> ProfileData:
    """Fold a free-form dict into :class:`ProfileData`.

    Recognised keys are kept; every other key is turned into a
    ``{"fact": "<key>: <value>"}`` entry appended to ``medical_facts`` so no
    extracted information is dropped.
    """
    normalized: dict[str, Any] = {}
    spillover: list[dict[str, str]] = []
    for key, value in raw.items():
        if key in PROFILE_FIELDS:
            normalized[key] = value
        else:
            spillover.append({"fact": f"{key}: {describe_value(value)}"})

    if spillover:
        existing = normalized.get("medical_facts")
        normalized["medical_facts"] = [*(existing if isinstance(existing, list) else []), *spillover]

    return ProfileData.model_validate(normalized)


def merge_medical_facts(
    existing: Iterable[Fact | Mapping[str, Any] | str],
    incoming: Iterable[Fact | Mapping[str, Any] | str],
) -> list[Fact]:
    """Append incoming facts whose text is not already present.

    Existing entries keep their order and come first; new facts follow in
    input order. Entries with empty text are skipped.
    """
    merged = [Fact.model_validate(f) for f in existing]
    seen = {f.fact for f in merged}
    for raw in incoming:
        fact = Fact.model_validate(raw)
        if not fact.fact or fact.fact in seen:
            continue
        merged.append(fact)
        seen.add(fact.fact)
    return merged


def merge_profile_updates(current: ProfileData, updates: ProfileData) -> dict[str, Any]:
    """Merge-patch payload for *updates* with ``medical_facts`` pre-merged against *current*."""
    payload = updates.present_fields()
    if updates.medical_facts is not None:
        merged = merge_medical_facts(current.medical_facts or [], updates.medical_facts)
        payload["medical_facts"] = [f.model_dump(mode="json") for f in merged]
    return payload


class ProfileRepository:
    """Profile primitives bound to one session / transaction. Never commits."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, tenant_id: str, for_update: bool = False) -> Profile | None:
        """Read the tenant's profile; ``for_update`` takes an exclusive row lock."""
        q = (
            select(MemoryProfileModel)
            .where(MemoryProfileModel.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            q = q.with_for_update()
        result = await self.session.execute(q)
        model = result.scalar_one_or_none()
        return self._to_schema(model) if model else None

    async def insert_if_absent(self, tenant_id: str, payload: dict[str, Any]) -> bool:
        """Create the profile at version 1. Returns False if a row already exists."""
        now = utc_now()
        stmt = (
            dialect_insert(self.session, MemoryProfileModel)
            .values(
                tenant_id=tenant_id,
                profile_data=payload,
                version=1,
                last_interaction_at=now,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[MemoryProfileModel.tenant_id])
            .returning(MemoryProfileModel.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def conditional_update(
        self,
        current: Profile,
        payload: dict[str, Any],
    ) -> ProfileWriteResult | VersionConflict:
        """Apply a shallow merge-patch on top of *current*, gated on its version."""
        merged = {**current.data.present_fields(), **payload}
        now = utc_now()
        stmt = (
            update(MemoryProfileModel)
            .where(
                and_(
                    MemoryProfileModel.tenant_id == current.tenant_id,
                    MemoryProfileModel.version == current.version,
                )
            )
            .values(
                profile_data=merged,
                version=MemoryProfileModel.version + 1,
                last_interaction_at=now,
                updated_at=now,
            )
            .returning(MemoryProfileModel.version)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        new_version = result.scalar_one_or_none()
        if new_version is None:
            return VersionConflict(expected_version=current.version)
        return ProfileWriteResult(updated=True, new_version=new_version)

    async def try_upsert(
        self,
        tenant_id: str,
        updates: ProfileData,
        expected_version: int,
    ) -> ProfileWriteResult | VersionConflict:
        """Single optimistic attempt.

        ``expected_version == 0`` inserts; if another writer created the row
        first, the update is merged onto that row under its lock instead.
        """
        payload = updates.present_fields()
        if expected_version == 0:
            if await self.insert_if_absent(tenant_id, payload):
                return ProfileWriteResult(updated=True, new_version=1)
            current = await self.get(tenant_id, for_update=True)
            if current is None:
                return VersionConflict(expected_version=0)
            return await self.conditional_update(current, payload)

        current = await self.get(tenant_id)
        if current is None or current.version != expected_version:
            return VersionConflict(
                expected_version=expected_version,
                current_version=current.version if current else None,
            )
        return await self.conditional_update(current, payload)

    async def upsert(
        self,
        tenant_id: str,
        updates: ProfileData,
        expected_version: int,
    ) -> ProfileWriteResult:
        """Optimistic upsert with one re-read-and-retry on a version conflict.

        A profile that vanished in between is recreated with a fresh insert.
        If the retry also loses, ``updated`` is False and ``new_version``
        reports the version currently stored.
        """
        outcome = await self.try_upsert(tenant_id, updates, expected_version)
        if isinstance(outcome, ProfileWriteResult):
            return outcome

        PROFILE_CONFLICTS.inc()
        logger.info(
            "profile_version_conflict",
            tenant_id=tenant_id,
            expected_version=expected_version,
            current_version=outcome.current_version,
        )
        current = await self.get(tenant_id)
        retry = await self.try_upsert(tenant_id, updates, current.version if current else 0)
        if isinstance(retry, ProfileWriteResult):
            return retry
        latest = await self.get(tenant_id)
        return ProfileWriteResult(updated=False, new_version=latest.version if latest else 0)

    @staticmethod
    def _to_schema(model: MemoryProfileModel) -> Profile:
        return Profile(
            tenant_id=model.tenant_id,
            data=normalize_profile_updates(model.profile_data or {}),
            version=model.version,
            last_interaction_at=model.last_interaction_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
