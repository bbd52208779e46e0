"""Memory components: profile store, episode log, concern tracker, view compiler, ingest."""

__all__ = [
    "EntityMemoryService",
    "IngestOrchestrator",
    "render",
]


def __getattr__(name: str):
    """Lazy exports to avoid package-level import cycles."""
    if name == "EntityMemoryService":
        from .service import EntityMemoryService

        return EntityMemoryService
    if name == "IngestOrchestrator":
        from .ingest import IngestOrchestrator

        return IngestOrchestrator
    if name == "render":
        from .view_compiler import render

        return render
    raise AttributeError(name)
