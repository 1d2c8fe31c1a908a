"""
Log Entry Data Structures for Synax Offline Sync.

Defines structured log entries for drain cycles and connectivity
transitions.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


@dataclass
class SyncLogEntry:
    """Log entry for one event of a drain cycle."""

    # Identity
    timestamp: str  # ISO 8601
    cycle_id: str  # UUID shared by every event of one cycle
    event: str  # "cycle_start", "item_synced", "item_failed", "cycle_complete",
    # "cycle_aborted", "cycle_cancelled"

    # Item (populated on item_* events)
    queue: str = ""  # "mutations" or "images"
    record_id: int | None = None
    entity_type: str = ""
    entity_id: str = ""
    action: str = ""
    method: str = ""
    path: str = ""

    # Cycle metrics
    total: int = 0
    synced: int = 0
    failed: int = 0
    progress: float = 0.0
    duration_ms: int = 0

    # Error (if any)
    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class ConnectivityLogEntry:
    """Log entry for online/offline transitions."""

    timestamp: str  # ISO 8601
    online: bool
    source: str = ""  # connectivity source class name
    pending_mutations: int = 0
    triggered_sync: bool = False

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConnectivityLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current time as ISO 8601 string."""
    return datetime.now().isoformat()
