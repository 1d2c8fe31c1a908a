"""
Synax Local Store Models

Dataclasses that map to the SQLite tables of the offline database:
- mutations: ordered outbox of structured domain changes
- images: outbox of binary photo uploads
- cached_entities: read-through cache of server documents
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from synax.exceptions import StoreError


# ============================================================================
# ENUMS - Type-safe values matching SQL schema
# ============================================================================


class QueueKind(str, Enum):
    """The two durable outbox queues."""

    MUTATIONS = "mutations"
    IMAGES = "images"


class QueueStatus(str, Enum):
    """Lifecycle status of a queued item."""

    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class EntityType(str, Enum):
    """Domain entities a mutation can target."""

    PROJECT = "project"
    FLOOR = "floor"
    ROOM = "room"
    ASSET = "asset"
    CHECKLIST = "checklist"
    CHECKLIST_ITEM = "checklistItem"
    ISSUE = "issue"


class MutationAction(str, Enum):
    """Kind of change recorded by a mutation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class CacheKind(str, Enum):
    """Read-cache collections."""

    PROJECTS = "projects"
    FLOORS = "floors"
    ROOMS = "rooms"
    ASSETS = "assets"
    ASSET_TYPES = "asset_types"
    CHECKLISTS = "checklists"
    CHECKLIST_ITEMS = "checklist_items"
    ISSUES = "issues"
    USERS = "users"


# Cached rows older than this are refetched when online
REFRESH_AFTER_MS = 5 * 60 * 1000


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def to_json(value: dict | list | None) -> str | None:
    """Convert dict or list to JSON string."""
    if value is None:
        return None
    return json.dumps(value)


def parse_json_dict(value: str | dict | None) -> dict:
    """
    Parse a stored JSON object. NULL becomes an empty dict.

    Raises:
        StoreError: If the stored text is not a JSON object
    """
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    try:
        result = json.loads(value)
    except (json.JSONDecodeError, TypeError) as e:
        raise StoreError("Stored data is not valid JSON", {"error": str(e)}) from e
    if not isinstance(result, dict):
        raise StoreError("Stored data is not a JSON object", {"type": type(result).__name__})
    return result


def needs_refresh(synced_at: int | None, now: int | None = None) -> bool:
    """Check if a cached row is missing a sync time or older than five minutes."""
    if not synced_at:
        return True
    current = now if now is not None else now_ms()
    return synced_at < current - REFRESH_AFTER_MS


# ============================================================================
# QUEUE ENTITIES
# ============================================================================


@dataclass
class MutationRecord:
    """
    A domain change waiting to be replayed against the API.

    Maps to: mutations table

    entity_type and action are kept as plain strings because rows written by
    other client versions may carry values this build does not know; those are
    rejected when the record is dispatched, not when it is loaded.
    """

    id: int | None = None
    timestamp: int = field(default_factory=now_ms)
    entity_type: str = ""
    entity_id: str = ""
    action: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    status: QueueStatus = QueueStatus.PENDING
    retry_count: int = 0
    error: str | None = None

    @classmethod
    def from_row(cls, row: tuple) -> MutationRecord:
        """Create from database row."""
        return cls(
            id=row[0],
            timestamp=row[1],
            entity_type=row[2],
            entity_id=row[3],
            action=row[4],
            data=parse_json_dict(row[5]),
            status=QueueStatus(row[6]) if row[6] else QueueStatus.PENDING,
            retry_count=row[7] or 0,
            error=row[8],
        )

    def to_row(self) -> tuple:
        """Convert to database row for INSERT (id assigned by SQLite)."""
        return (
            self.timestamp,
            self.entity_type,
            self.entity_id,
            self.action,
            to_json(self.data) or "{}",
            self.status.value,
            self.retry_count,
            self.error,
        )

    @property
    def label(self) -> str:
        """Short human-readable description."""
        return f"{self.entity_type}/{self.action} {self.entity_id}"


@dataclass
class PendingImage:
    """
    A photo captured offline waiting to be uploaded.

    Maps to: images table

    mutation_id only records which change the photo belongs to; uploads do
    not wait for that mutation.
    """

    id: int | None = None
    timestamp: int = field(default_factory=now_ms)
    mutation_id: int | None = None
    entity_type: str = ""
    entity_id: str = ""
    blob: bytes = b""
    filename: str = ""
    status: QueueStatus = QueueStatus.PENDING

    @classmethod
    def from_row(cls, row: tuple) -> PendingImage:
        """Create from database row."""
        return cls(
            id=row[0],
            timestamp=row[1],
            mutation_id=row[2],
            entity_type=row[3],
            entity_id=row[4],
            blob=bytes(row[5]) if row[5] is not None else b"",
            filename=row[6],
            status=QueueStatus(row[7]) if row[7] else QueueStatus.PENDING,
        )

    def to_row(self) -> tuple:
        """Convert to database row for INSERT (id assigned by SQLite)."""
        return (
            self.timestamp,
            self.mutation_id,
            self.entity_type,
            self.entity_id,
            self.blob,
            self.filename,
            self.status.value,
        )

    @property
    def label(self) -> str:
        """Short human-readable description."""
        return f"{self.entity_type} {self.entity_id} {self.filename}"


# ============================================================================
# READ CACHE
# ============================================================================


@dataclass
class CachedEntity:
    """
    A server document kept for offline reads.

    Maps to: cached_entities table
    """

    kind: CacheKind
    id: str
    data: dict[str, Any] = field(default_factory=dict)
    synced_at: int | None = None

    @classmethod
    def from_row(cls, row: tuple) -> CachedEntity:
        """Create from database row."""
        return cls(
            kind=CacheKind(row[0]),
            id=row[1],
            data=parse_json_dict(row[2]),
            synced_at=row[3],
        )

    @property
    def stale(self) -> bool:
        """Whether this row should be refetched."""
        return needs_refresh(self.synced_at)


@dataclass(frozen=True)
class DatabaseStats:
    """Counts shown by the offline indicator and the status command."""

    projects: int = 0
    floors: int = 0
    rooms: int = 0
    assets: int = 0
    pending_mutations: int = 0
    pending_images: int = 0
    failed_mutations: int = 0
    failed_images: int = 0
