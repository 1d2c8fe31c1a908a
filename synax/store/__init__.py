"""
Synax Local Store

SQLite-backed durable storage for the offline client: the mutation and
image outboxes plus the read cache of server documents.
"""

from synax.store.models import (
    CacheKind,
    CachedEntity,
    DatabaseStats,
    EntityType,
    MutationAction,
    MutationRecord,
    PendingImage,
    QueueKind,
    QueueStatus,
    needs_refresh,
    now_ms,
)
from synax.store.repository import LocalStore

__all__ = [
    # Enums
    "QueueKind",
    "QueueStatus",
    "EntityType",
    "MutationAction",
    "CacheKind",
    # Entities
    "MutationRecord",
    "PendingImage",
    "CachedEntity",
    "DatabaseStats",
    # Helpers
    "needs_refresh",
    "now_ms",
    # Store
    "LocalStore",
]
