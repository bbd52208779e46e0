"""Core enums for concern severity and lifecycle status."""

from enum import Enum


class ConcernSeverity(str, Enum):
    """How serious a tracked concern is. Ordered low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def max(cls, a: "ConcernSeverity", b: "ConcernSeverity") -> "ConcernSeverity":
        """Escalate-only combination: the more severe of the two."""
        return b if b.rank > a.rank else a

    @property
    def is_alert(self) -> bool:
        return self in (ConcernSeverity.HIGH, ConcernSeverity.CRITICAL)


_SEVERITY_RANK = {
    ConcernSeverity.LOW: 0,
    ConcernSeverity.MEDIUM: 1,
    ConcernSeverity.HIGH: 2,
    ConcernSeverity.CRITICAL: 3,
}


class ConcernStatus(str, Enum):
    """Lifecycle status of a concern."""

    ACTIVE = "active"
    IMPROVING = "improving"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


# Statuses that count as "open" for reads and rendering.
OPEN_CONCERN_STATUSES = (
    ConcernStatus.ACTIVE,
    ConcernStatus.IMPROVING,
    ConcernStatus.ESCALATED,
)

# Statuses a caller may set explicitly; ACTIVE is only reached through a new mention.
SETTABLE_CONCERN_STATUSES = frozenset(
    {ConcernStatus.IMPROVING, ConcernStatus.RESOLVED, ConcernStatus.ESCALATED}
)


class EpisodeType(str, Enum):
    """Well-known episode tags. Episodes accept any string; these are the ones the core writes."""

    CONVERSATION = "conversation"
    CHECKIN = "checkin"


class MessageRole(str, Enum):
    """Speaker roles accepted in raw chat messages."""

    PARENT = "parent"
    CAREGIVER = "caregiver"
    SYSTEM = "system"
