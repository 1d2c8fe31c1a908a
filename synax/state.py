"""
Synax Offline Sync - Observable Sync State

Holds the session-scoped status shown by offline indicators: connectivity,
drain progress, last error and pending/cached counts. Never persisted; the
counts are re-queried from the local store after a restart.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, fields, replace
from typing import Any

from synax.exceptions import StateError
from synax.store.models import now_ms

logger = logging.getLogger(__name__)

StateListener = Callable[["SyncState"], None]


@dataclass(frozen=True)
class SyncState:
    """
    Snapshot of the offline sync status.

    is_syncing is true for the whole of one drain cycle and false otherwise.
    sync_progress never decreases within a cycle and resets to 0 when the
    next cycle starts.
    """

    # Connection status
    is_online: bool = True
    last_online_at: int | None = None

    # Sync status
    is_syncing: bool = False
    sync_progress: float = 0.0
    last_sync_at: int | None = None
    sync_error: str | None = None

    # Pending changes
    pending_mutations: int = 0
    pending_images: int = 0

    # Database stats
    cached_projects: int = 0
    cached_floors: int = 0
    cached_rooms: int = 0
    cached_assets: int = 0

    @property
    def has_pending(self) -> bool:
        """Whether any structured change is waiting to be sent."""
        return self.pending_mutations > 0

    @property
    def indicator(self) -> str:
        """Short label for a status badge."""
        if not self.is_online:
            return "offline"
        if self.is_syncing:
            return f"syncing {round(self.sync_progress)}%"
        if self.sync_error:
            return "sync failed"
        if self.pending_mutations:
            return f"{self.pending_mutations} pending"
        return "online"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


_FIELD_NAMES = frozenset(f.name for f in fields(SyncState))


class SyncStateStore:
    """
    Observable holder for the current SyncState.

    Updates replace the snapshot wholesale, so a listener can keep the state
    it was handed without it changing underneath.
    """

    def __init__(self, initial: SyncState | None = None):
        self._state = initial or SyncState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> SyncState:
        """Current snapshot."""
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called with every new snapshot.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes: Any) -> SyncState:
        """
        Replace the snapshot with the given fields changed.

        Raises:
            StateError: If a field name is not part of SyncState
        """
        unknown = set(changes) - _FIELD_NAMES
        if unknown:
            raise StateError(
                "Unknown sync state fields",
                {"fields": sorted(unknown)},
            )

        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Sync state listener failed")
        return self._state

    def set_online(self, online: bool) -> SyncState:
        """Record a connectivity transition."""
        if online:
            return self.update(is_online=True, last_online_at=now_ms())
        return self.update(is_online=False)
