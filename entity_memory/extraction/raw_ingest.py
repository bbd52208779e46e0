"""Raw chat-message ingest: extract structured updates, or store the transcript when extraction fails."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.config import RawIngestSettings
from ..core.enums import EpisodeType
from ..core.exceptions import ExtractionError, ValidationError
from ..core.schemas import (
    EpisodeCreate,
    ExtractionResult,
    IngestResult,
    ProfileData,
    RawIngestResult,
    RawMessage,
)
from ..memory.service import EntityMemoryService
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class MemoryExtractor(ABC):
    """Turns raw messages into structured memory updates.

    Implementations call an LLM and typically hand its text to
    :func:`~entity_memory.extraction.parser.parse_extraction_json`.
    Any exception raised by :meth:`extract` counts as an extraction failure.
    """

    @abstractmethod
    async def extract(
        self,
        messages: Sequence[RawMessage],
        channel: str,
        existing_profile: ProfileData | None,
    ) -> ExtractionResult:
        ...


class UnconfiguredExtractor(MemoryExtractor):
    """Used when no backend is wired in: every call takes the transcript fallback."""

    async def extract(
        self,
        messages: Sequence[RawMessage],
        channel: str,
        existing_profile: ProfileData | None,
    ) -> ExtractionResult:
        raise ExtractionError("no extraction backend configured")


def validate_raw_messages(
    messages: Sequence[RawMessage | Mapping[str, Any]],
    settings: RawIngestSettings,
) -> list[RawMessage]:
    """Check count, roles, content and total size. Raises :class:`ValidationError`."""
    if not messages:
        raise ValidationError("messages must be a non-empty array")
    if len(messages) > settings.max_messages:
        raise ValidationError(f"messages exceeds maximum count ({settings.max_messages})")

    validated: list[RawMessage] = []
    total_chars = 0
    for i, raw in enumerate(messages):
        try:
            msg = raw if isinstance(raw, RawMessage) else RawMessage.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"messages[{i}] is invalid: {e}") from e
        if not msg.content:
            raise ValidationError(f"messages[{i}].content must be a non-empty string")
        total_chars += len(msg.content)
        validated.append(msg)

    if total_chars > settings.max_total_chars:
        raise ValidationError(
            f"total message content exceeds {settings.max_total_chars} characters "
            f"(got {total_chars})"
        )
    return validated


def build_fallback_content(messages: Sequence[RawMessage], max_chars: int) -> str:
    return "\n".join(f"[{m.role.value}] {m.content}" for m in messages)[:max_chars]


class RawIngestor:
    """Runs extraction over raw messages and feeds the result to ``ingest``."""

    def __init__(
        self,
        service: EntityMemoryService,
        extractor: MemoryExtractor | None = None,
        settings: RawIngestSettings | None = None,
    ):
        self.service = service
        self.extractor = extractor or UnconfiguredExtractor()
        self.settings = settings or RawIngestSettings()

    async def ingest_raw(
        self,
        tenant_id: str,
        channel: str,
        messages: Sequence[RawMessage | Mapping[str, Any]],
        source: str | None = None,
        render: bool = True,
    ) -> RawIngestResult:
        if not tenant_id:
            raise ValidationError("tenant_id is required")
        if not channel:
            raise ValidationError("channel is required")
        validated = validate_raw_messages(messages, self.settings)
        source = source or self.settings.default_source

        existing = await self._existing_profile(tenant_id)
        try:
            extraction = await self.extractor.extract(validated, channel, existing)
        except Exception as e:
            logger.warning(
                "raw_extraction_failed",
                tenant_id=tenant_id,
                channel=channel,
                message_count=len(validated),
                error=str(e),
            )
            results = await self.service.ingest(
                tenant_id,
                episode=EpisodeCreate(
                    episode_type=EpisodeType.CONVERSATION.value,
                    channel=channel,
                    content=build_fallback_content(validated, self.settings.fallback_max_chars),
                    metadata={"source": source, "extractionFailed": True},
                ),
                render=render,
            )
            return RawIngestResult(extraction_failed=True, extraction_error=str(e), results=results)

        # Extraction output is trusted here; a failure now is a storage error and propagates.
        results = await self._ingest_extraction(
            tenant_id, channel, extraction, source, len(validated), render
        )
        return RawIngestResult(extraction=extraction, results=results)

    async def _existing_profile(self, tenant_id: str) -> ProfileData | None:
        try:
            profile = await self.service.get_profile(tenant_id)
        except Exception as e:
            logger.warning("raw_profile_read_failed", tenant_id=tenant_id, error=str(e))
            return None
        return profile.data if profile is not None else None

    async def _ingest_extraction(
        self,
        tenant_id: str,
        channel: str,
        extraction: ExtractionResult,
        source: str,
        message_count: int,
        render: bool,
    ) -> IngestResult:
        updates = extraction.profile_updates
        return await self.service.ingest(
            tenant_id,
            profile_updates=updates if updates is not None and updates.present_fields() else None,
            episode=EpisodeCreate(
                episode_type=EpisodeType.CONVERSATION.value,
                channel=channel,
                content=extraction.episode_summary,
                metadata={"source": source, "rawMessageCount": message_count},
            ),
            concerns=[c.with_source(source) for c in extraction.concerns or []] or None,
            render=render,
        )
