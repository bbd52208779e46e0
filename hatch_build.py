"""Hatch build plugin: set the package version from ENTITY_MEMORY_VERSION or the VERSION file."""

import os
from pathlib import Path

from hatchling.metadata.plugin.interface import MetadataHookInterface


def get_version(root: Path) -> str:
    """Env var ``ENTITY_MEMORY_VERSION`` first, then the first line of ``VERSION``."""
    version = os.environ.get("ENTITY_MEMORY_VERSION")
    if version:
        return version.strip()
    version_file = root / "VERSION"
    if version_file.is_file():
        return version_file.read_text().strip() or "0.0.0"
    return "0.0.0"


class VersionMetadataHook(MetadataHookInterface):
    def update(self, metadata: dict) -> None:
        metadata["version"] = get_version(Path(self.root))
