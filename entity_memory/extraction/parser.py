"""Parse and validate the JSON an extraction step produces for a batch of raw messages."""

import json
from typing import Any

from ..core.enums import ConcernSeverity
from ..core.exceptions import ExtractionError
from ..core.schemas import ExtractedConcern, ExtractionResult
from ..memory.profile_store import normalize_profile_updates

_CONCERN_TEXT_FIELDS = ("concernKey", "displayName", "evidenceText")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    raw = text.strip()
    if raw.startswith("```"):
        lines = raw.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        raw = "\n".join(lines).strip()
    return raw


def _validate_concern(item: Any, index: int) -> ExtractedConcern:
    if not isinstance(item, dict):
        raise ExtractionError(f"concerns[{index}] is not an object")
    for field in _CONCERN_TEXT_FIELDS:
        value = item.get(field)
        if not value or not isinstance(value, str):
            raise ExtractionError(f"concerns[{index}].{field} must be a non-empty string")
    severity = item.get("severity")
    if severity not in {s.value for s in ConcernSeverity}:
        raise ExtractionError(
            f"concerns[{index}].severity must be one of: low, medium, high, critical "
            f"(got {severity!r})"
        )
    return ExtractedConcern.model_validate(item)


def parse_extraction_json(text: str) -> ExtractionResult:
    """Turn extraction output into an :class:`ExtractionResult`.

    Raises:
        ExtractionError: the text is not JSON, or a field has the wrong shape.
    """
    try:
        parsed = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"extraction output is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ExtractionError("extraction output must be a JSON object")

    summary = parsed.get("episodeSummary")
    if not summary or not isinstance(summary, str):
        raise ExtractionError("extraction did not return episodeSummary")

    raw_updates = parsed.get("profileUpdates")
    if raw_updates is not None and not isinstance(raw_updates, dict):
        raise ExtractionError("profileUpdates must be a plain object (not array or primitive)")

    raw_concerns = parsed.get("concerns")
    if raw_concerns is not None and not isinstance(raw_concerns, list):
        raise ExtractionError("concerns must be an array")
    concerns = [_validate_concern(c, i) for i, c in enumerate(raw_concerns or [])]

    profile_updates = None
    if raw_updates:
        try:
            profile_updates = normalize_profile_updates(raw_updates)
        except ValueError as e:
            raise ExtractionError(f"profileUpdates has an invalid shape: {e}") from e
        if not profile_updates.present_fields():
            profile_updates = None

    return ExtractionResult(
        profile_updates=profile_updates,
        episode_summary=summary,
        concerns=concerns if raw_concerns is not None else None,
    )
