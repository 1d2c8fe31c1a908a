"""Tests for exceptions module."""

import pytest

from synax.exceptions import (
    ApiConnectionError,
    ApiError,
    ConfigError,
    InvalidPayloadError,
    MappingError,
    OutboxError,
    RemoteRejectedError,
    StoreError,
    SyncError,
    SyncInProgressError,
    SynaxError,
    UnmappedMutationError,
)


class TestSynaxError:
    """Tests for base SynaxError."""

    def test_basic_error(self):
        """Test basic error creation."""
        error = SynaxError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.details == {}

    def test_error_with_details(self):
        """Test error with details dict."""
        error = SynaxError("Failed", {"table": "mutations"})
        assert "Failed" in str(error)
        assert "mutations" in str(error)
        assert error.details == {"table": "mutations"}


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    def test_direct_subclasses_inherit_from_base(self):
        """Top-level error families are SynaxErrors."""
        for cls in (ConfigError, StoreError, OutboxError, SyncInProgressError, SyncError):
            assert issubclass(cls, SynaxError)

    def test_mapping_errors_are_sync_errors(self):
        """Mapping failures are handled at the per-item boundary."""
        assert issubclass(MappingError, SyncError)
        assert issubclass(UnmappedMutationError, MappingError)
        assert issubclass(InvalidPayloadError, MappingError)

    def test_api_errors_are_sync_errors(self):
        """Remote failures are handled at the per-item boundary."""
        assert issubclass(ApiError, SyncError)
        assert issubclass(RemoteRejectedError, ApiError)
        assert issubclass(ApiConnectionError, ApiError)

    def test_store_error_is_not_a_sync_error(self):
        """Local storage failures must abort the cycle, not be recorded per item."""
        assert not issubclass(StoreError, SyncError)

    def test_catch_by_base_class(self):
        """Catching SynaxError catches all subclasses."""
        with pytest.raises(SynaxError):
            raise RemoteRejectedError("Forbidden", 403)


class TestStructuredErrors:
    """Tests for errors carrying extra attributes."""

    def test_unmapped_mutation_error(self):
        """UnmappedMutationError keeps entity type and action."""
        error = UnmappedMutationError("Unknown entity type: widget", "widget", "create")
        assert error.message == "Unknown entity type: widget"
        assert error.entity_type == "widget"
        assert error.action == "create"
        assert error.details == {"entity_type": "widget", "action": "create"}

    def test_invalid_payload_error(self):
        """InvalidPayloadError names the missing field."""
        error = InvalidPayloadError("asset/create requires roomId in data", "roomId")
        assert error.field_name == "roomId"

    def test_remote_rejected_error(self):
        """RemoteRejectedError keeps the HTTP status."""
        error = RemoteRejectedError("Validation failed", 422)
        assert error.status == 422
        assert error.message == "Validation failed"
