"""Extraction: parse extraction output and ingest raw chat messages."""

from .parser import parse_extraction_json
from .raw_ingest import MemoryExtractor, RawIngestor, UnconfiguredExtractor

__all__ = [
    "MemoryExtractor",
    "RawIngestor",
    "UnconfiguredExtractor",
    "parse_extraction_json",
]
