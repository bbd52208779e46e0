"""Render a tenant's profile, open concerns and recent episodes into one document."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..core.schemas import Concern, Episode, Fact, Profile
from .profile_store import describe_value

ELLIPSIS = "..."
ALERT_MARKER = "[!] "


@dataclass(frozen=True)
class SectionTitles:
    """Headings used by :func:`render`."""

    document: str = "# Memory Profile"
    medical_facts: str = "## Medical Facts"
    baby_snapshot: str = "## Baby Snapshot"
    feeding_profile: str = "## Feeding Profile"
    next_actions: str = "## Next Actions"
    concerns: str = "## Active Concerns"
    episodes: str = "## Recent Episodes"


DEFAULT_TITLES = SectionTitles()


def truncate(text: str, max_chars: int) -> str:
    return text[:max_chars] + ELLIPSIS if len(text) > max_chars else text


def _fmt_date(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%d")


def _fact_text(f: Fact) -> str:
    if f.fact:
        return f.fact
    extra = f.model_dump(exclude={"fact"})
    return describe_value(extra) if extra else ""


def _fact_lines(facts: Sequence[Fact]) -> list[str]:
    return [f"- {text}" for text in map(_fact_text, facts) if text]


def _mapping_lines(values: dict[str, Any]) -> list[str]:
    return [
        f"- {k}: {describe_value(v)}" for k, v in values.items() if v is not None and v != ""
    ]


def _concern_line(c: Concern) -> str:
    marker = ALERT_MARKER if c.severity.is_alert else ""
    return (
        f"- {marker}{c.display_name} ({c.severity.value}, mentioned {c.mention_count}x, "
        f"last seen: {_fmt_date(c.last_seen_at)})"
    )


def _episode_line(e: Episode, max_chars: int) -> str:
    return f"- [{_fmt_date(e.created_at)} {e.channel}] {truncate(e.content, max_chars)}"


def render(
    profile: Profile | None,
    concerns: Sequence[Concern],
    episodes: Sequence[Episode],
    truncate_chars: int = 100,
    titles: SectionTitles = DEFAULT_TITLES,
) -> str | None:
    """Compile the rendered view.

    Returns ``None`` when no section has a line to show, which also covers a
    profile whose only values are blank. Output is a pure function of the inputs.
    """
    data = profile.data if profile is not None else None
    parts: list[str] = [titles.document + "\n"]

    def section(title: str, lines: list[str]) -> None:
        if lines:
            parts.extend([title, *lines, ""])

    if data is not None:
        section(titles.medical_facts, _fact_lines(data.medical_facts or []))
        section(titles.baby_snapshot, _mapping_lines(data.baby_snapshot or {}))
        section(titles.feeding_profile, _mapping_lines(data.feeding_profile or {}))
        section(titles.next_actions, _fact_lines(data.next_actions or []))

    section(titles.concerns, [_concern_line(c) for c in concerns])
    section(titles.episodes, [_episode_line(e, truncate_chars) for e in episodes])

    if len(parts) == 1:
        return None
    return "\n".join(parts)
