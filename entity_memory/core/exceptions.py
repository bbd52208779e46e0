"""Custom exception hierarchy for Entity Memory."""


class EntityMemoryError(Exception):
    """Base exception for all Entity Memory errors."""

    pass


# --- Storage errors ---


class StorageError(EntityMemoryError):
    """Base for storage-related errors."""

    pass


class StorageConnectionError(StorageError):
    """Failed to connect to the database backend."""

    pass


# --- Validation errors ---


class ValidationError(EntityMemoryError):
    """Input validation failed."""

    pass


class ConfigurationError(EntityMemoryError):
    """Application configuration is invalid or missing required values."""

    pass


# --- Processing errors ---


class ExtractionError(EntityMemoryError):
    """Extraction output could not be parsed or failed validation."""

    pass
