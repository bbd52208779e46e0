"""Unit tests for core exception hierarchy."""

import pytest

from entity_memory.core.exceptions import (
    ConfigurationError,
    EntityMemoryError,
    ExtractionError,
    StorageConnectionError,
    StorageError,
    ValidationError,
)


class TestExceptionHierarchy:
    """Core exception inheritance."""

    def test_storage_error_inherits_from_entity_memory_error(self):
        assert issubclass(StorageError, EntityMemoryError)

    def test_storage_connection_error_inherits_from_storage_error(self):
        assert issubclass(StorageConnectionError, StorageError)
        assert issubclass(StorageConnectionError, EntityMemoryError)

    def test_validation_error_inherits_from_entity_memory_error(self):
        assert issubclass(ValidationError, EntityMemoryError)

    def test_configuration_error_inherits_from_entity_memory_error(self):
        assert issubclass(ConfigurationError, EntityMemoryError)

    def test_extraction_error_inherits_from_entity_memory_error(self):
        assert issubclass(ExtractionError, EntityMemoryError)

    def test_validation_error_is_not_a_storage_error(self):
        assert not issubclass(ValidationError, StorageError)


class TestExceptionMessages:
    def test_message_preserved(self):
        with pytest.raises(ExtractionError, match="episodeSummary"):
            raise ExtractionError("extraction did not return episodeSummary")

    def test_catch_by_base(self):
        with pytest.raises(EntityMemoryError):
            raise StorageConnectionError("down")
