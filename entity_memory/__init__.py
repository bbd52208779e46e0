"""Per-tenant entity memory: versioned profile, episode log, concern tracker, rendered view."""

from .core.config import Settings, get_settings
from .memory.service import EntityMemoryService
from .storage.connection import DatabaseManager

__all__ = [
    "DatabaseManager",
    "EntityMemoryService",
    "Settings",
    "get_settings",
]
