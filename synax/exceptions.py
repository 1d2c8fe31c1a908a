"""
Synax Offline Sync - Exception Hierarchy

All Synax-specific exceptions inherit from SynaxError.

Per-item dispatch failures derive from SyncError and are converted into
stored queue state by the sync engine. Anything else raised during a drain
cycle (StoreError in particular) aborts the whole cycle.
"""

from typing import Any


class SynaxError(Exception):
    """Base exception for all Synax-related errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration Errors
class ConfigError(SynaxError):
    """Raised when configuration is invalid or missing."""

    pass


# Local Store Errors
class StoreError(SynaxError):
    """Raised when a read or write against the local database fails."""

    pass


class OutboxError(SynaxError):
    """Raised when a change cannot be recorded in the outbox."""

    pass


# State Errors
class StateError(SynaxError):
    """Raised when the sync state is updated with unknown fields."""

    pass


class SyncInProgressError(SynaxError):
    """Raised when an operation requires that no drain cycle is running."""

    pass


# Per-item Sync Errors
class SyncError(SynaxError):
    """Base exception for failures while replaying a single queued item."""

    pass


class MappingError(SyncError):
    """Raised when a queued item cannot be translated into an HTTP request."""

    pass


class UnmappedMutationError(MappingError):
    """Raised when no request mapping exists for an entity type/action pair."""

    def __init__(self, message: str, entity_type: str, action: str | None = None):
        super().__init__(message, {"entity_type": entity_type, "action": action})
        self.entity_type = entity_type
        self.action = action


class InvalidPayloadError(MappingError):
    """Raised when a mapped mutation lacks a field its request needs."""

    def __init__(self, message: str, field_name: str):
        super().__init__(message, {"field": field_name})
        self.field_name = field_name


class ApiError(SyncError):
    """Base exception for remote API failures."""

    pass


class RemoteRejectedError(ApiError):
    """Raised when the remote API answers with a non-2xx status."""

    def __init__(self, message: str, status: int):
        super().__init__(message, {"status": status})
        self.status = status


class ApiConnectionError(ApiError):
    """Raised when the remote API cannot be reached or times out."""

    pass
