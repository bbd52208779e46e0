"""Core types and configuration for entity memory."""

from .config import Settings, get_settings
from .enums import ConcernSeverity, ConcernStatus, EpisodeType, MessageRole
from .schemas import Concern, Episode, IngestResult, Profile, ProfileData

__all__ = [
    "get_settings",
    "Settings",
    "ConcernSeverity",
    "ConcernStatus",
    "EpisodeType",
    "MessageRole",
    "Concern",
    "Episode",
    "IngestResult",
    "Profile",
    "ProfileData",
]
