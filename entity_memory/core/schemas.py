"""Core Pydantic schemas for profiles, episodes, concerns, and ingest results."""

import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .enums import ConcernSeverity, ConcernStatus, EpisodeType, MessageRole

PROFILE_FIELDS = ("medical_facts", "baby_snapshot", "feeding_profile", "next_actions")


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys on the wire; snake_case field names also accepted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Fact(BaseModel):
    """One entry of a fact list (medical facts, next actions).

    Accepts a bare string or a ``{"text": ...}`` object on input; extra keys
    (dates, sources) are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    fact: str = ""

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"fact": value}
        if isinstance(value, dict) and "fact" not in value and isinstance(value.get("text"), str):
            return {**value, "fact": value["text"]}
        if not isinstance(value, dict):
            return {"fact": json.dumps(value, ensure_ascii=False, separators=(",", ":"))}
        return value


class ProfileData(BaseModel):
    """The profile document: exactly four recognised, optional top-level fields.

    ``None`` means "not present". Unknown keys are rejected here; use
    :func:`entity_memory.memory.profile_store.normalize_profile_updates` to fold
    free-form dicts into this shape first.
    """

    model_config = ConfigDict(extra="forbid")

    medical_facts: list[Fact] | None = None
    baby_snapshot: dict[str, Any] | None = None
    feeding_profile: dict[str, Any] | None = None
    next_actions: list[Fact] | None = None

    def present_fields(self) -> dict[str, Any]:
        """JSON-ready dict of the fields that are set (merge-patch payload)."""
        return self.model_dump(mode="json", exclude_none=True)


class Profile(CamelModel):
    """Single versioned profile document per tenant."""

    tenant_id: str
    data: ProfileData = Field(default_factory=ProfileData)
    version: int = 0
    last_interaction_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EpisodeCreate(CamelModel):
    """Input for a new episode."""

    episode_type: str = EpisodeType.CONVERSATION.value
    channel: str = "system"
    content: str
    metadata: dict[str, Any] | None = None

    @field_validator("episode_type", "channel")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value


class Episode(CamelModel):
    """Append-only, timestamped event record."""

    id: int
    tenant_id: str
    episode_type: str
    channel: str
    content: str
    metadata: dict[str, Any] | None = None
    is_superseded: bool = False
    created_at: datetime


class EvidenceEntry(BaseModel):
    """One piece of evidence attached to a concern."""

    text: str
    source: str
    date: str  # YYYY-MM-DD


class ConcernUpsert(CamelModel):
    """Input for one concern mention."""

    concern_key: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    severity: ConcernSeverity
    evidence_text: str
    source: str


class Concern(CamelModel):
    """Tracked issue for a tenant, keyed by ``concern_key``."""

    id: int
    tenant_id: str
    concern_key: str
    display_name: str
    severity: ConcernSeverity
    status: ConcernStatus
    mention_count: int = 1
    evidence: list[EvidenceEntry] = Field(default_factory=list)
    first_seen_at: datetime
    last_seen_at: datetime
    resolved_at: datetime | None = None
    followup_due: date | None = None


# --- Write results ---


class ProfileWriteResult(CamelModel):
    updated: bool
    new_version: int


class VersionConflict(CamelModel):
    """Optimistic-concurrency miss: the stored version was not the expected one."""

    expected_version: int
    current_version: int | None = None  # None when the row is gone


class EpisodeWriteResult(CamelModel):
    id: int


class ConcernWriteResult(CamelModel):
    id: int
    mention_count: int


class RenderResult(CamelModel):
    rendered: bool


class StatusUpdateResult(CamelModel):
    updated: int  # 0 or 1


class IngestRequest(CamelModel):
    """Validated ingest input. Every part is optional."""

    profile_updates: ProfileData | None = None
    episode: EpisodeCreate | None = None
    concerns: list[ConcernUpsert] | None = None
    render: bool = True


class IngestResult(CamelModel):
    """Per-part outcome of one ingest call; parts that were not requested stay ``None``."""

    profile: ProfileWriteResult | None = None
    episode: EpisodeWriteResult | None = None
    concerns: list[ConcernWriteResult] | None = None
    render: RenderResult | None = None


# --- Raw message ingest ---


class RawMessage(BaseModel):
    role: MessageRole
    content: str
    timestamp: datetime | None = None


class ExtractedConcern(CamelModel):
    """Concern as produced by extraction; ``source`` is attached by the caller."""

    concern_key: str
    display_name: str
    severity: ConcernSeverity
    evidence_text: str

    def with_source(self, source: str) -> ConcernUpsert:
        return ConcernUpsert(**self.model_dump(), source=source)


class ExtractionResult(CamelModel):
    profile_updates: ProfileData | None = None
    episode_summary: str
    concerns: list[ExtractedConcern] | None = None


class RawIngestResult(CamelModel):
    extraction_failed: bool = False
    extraction_error: str | None = None
    extraction: ExtractionResult | None = None
    results: IngestResult

