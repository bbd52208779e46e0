"""Storage layer: SQLAlchemy models, connection management, bootstrap files."""

from .bootstrap_files import BootstrapFileRepository
from .connection import DatabaseManager
from .models import (
    Base,
    BootstrapFileModel,
    MemoryConcernModel,
    MemoryEpisodeModel,
    MemoryProfileModel,
)

__all__ = [
    "DatabaseManager",
    "Base",
    "BootstrapFileModel",
    "BootstrapFileRepository",
    "MemoryConcernModel",
    "MemoryEpisodeModel",
    "MemoryProfileModel",
]
