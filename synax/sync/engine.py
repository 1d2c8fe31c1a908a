"""
Sync Engine - replays the offline outbox against the Synax API

One drain cycle at a time: snapshot the pending mutations, replay them in
enqueue order, then upload pending photos. A failing item is recorded on
the item and the cycle moves on; only failures outside the per-item
boundary (a local store error, for example) abort the cycle.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from synax.exceptions import SynaxError, SyncInProgressError
from synax.logging import SyncLogEntry, now_iso, sync_logger
from synax.state import SyncStateStore
from synax.store import LocalStore, MutationRecord, PendingImage, QueueKind, QueueStatus, now_ms
from synax.sync.mapping import ApiRequest, UploadRequest, request_for_image, request_for_mutation

logger = logging.getLogger(__name__)


class SyncTransport(Protocol):
    """What the engine needs from the API client."""

    async def send(self, request: ApiRequest) -> Any: ...

    async def upload(self, request: UploadRequest) -> Any: ...


def _error_message(error: BaseException) -> str:
    if isinstance(error, SynaxError):
        return error.message
    return str(error) or type(error).__name__


@dataclass
class SyncReport:
    """Outcome of one sync_now() call."""

    cycle_id: str = ""
    skipped: bool = False
    mutations_total: int = 0
    mutations_synced: int = 0
    mutations_failed: int = 0
    images_total: int = 0
    images_uploaded: int = 0
    images_failed: int = 0
    # Mutation ids in the order they were dispatched
    dispatched: list[int] = field(default_factory=list)
    error: str | None = None
    duration_ms: int = 0

    @property
    def aborted(self) -> bool:
        """Whether the cycle stopped on a whole-cycle error."""
        return self.error is not None


class SyncEngine:
    """
    Drains the mutation and image outboxes.

    The engine owns no global state: the store, API client and state store
    are injected, and the only concurrency guard is SyncState.is_syncing,
    checked and set before sync_now() first yields to the event loop.
    """

    def __init__(
        self,
        store: LocalStore,
        api: SyncTransport,
        state: SyncStateStore,
    ):
        self._store = store
        self._api = api
        self._state = state

    @property
    def is_syncing(self) -> bool:
        """Whether a drain cycle is running."""
        return self._state.state.is_syncing

    async def sync_now(self) -> SyncReport:
        """
        Run one drain cycle if online and no cycle is already running.

        Returns:
            SyncReport; skipped=True when the guard refused to start
        """
        current = self._state.state
        if not current.is_online or current.is_syncing:
            logger.debug(
                f"Sync skipped (online={current.is_online}, syncing={current.is_syncing})"
            )
            return SyncReport(skipped=True)

        self._state.update(is_syncing=True, sync_progress=0.0, sync_error=None)

        report = SyncReport(cycle_id=str(uuid.uuid4()))
        started = time.monotonic()

        try:
            mutations = self._store.list_pending(QueueKind.MUTATIONS)
            report.mutations_total = len(mutations)
            self._log(report, "cycle_start", total=len(mutations))

            for index, record in enumerate(mutations):
                await self._replay_mutation(record, report)
                self._state.update(sync_progress=(index + 1) / len(mutations) * 100)

            images = self._store.list_pending(QueueKind.IMAGES)
            report.images_total = len(images)
            for image in images:
                await self._upload_image(image, report)

        except asyncio.CancelledError:
            self._state.update(is_syncing=False)
            self.refresh_counts()
            self._log(report, "cycle_cancelled")
            raise
        except Exception as e:
            report.error = _error_message(e)
            report.duration_ms = int((time.monotonic() - started) * 1000)
            logger.error(f"Sync cycle {report.cycle_id[:8]} aborted: {report.error}")
            self._state.update(is_syncing=False, sync_error=report.error)
            self._log(report, "cycle_aborted", error=report.error, error_type=type(e).__name__)
            return report

        report.duration_ms = int((time.monotonic() - started) * 1000)
        self._state.update(is_syncing=False, sync_progress=100.0, last_sync_at=now_ms())
        self.refresh_counts()

        logger.info(
            f"Sync cycle {report.cycle_id[:8]} complete: "
            f"{report.mutations_synced}/{report.mutations_total} mutations, "
            f"{report.images_uploaded}/{report.images_total} images"
        )
        self._log(report, "cycle_complete", progress=100.0)
        return report

    async def _replay_mutation(self, record: MutationRecord, report: SyncReport) -> None:
        """Replay one mutation; record the failure on it instead of raising."""
        self._store.update_status(QueueKind.MUTATIONS, record.id, QueueStatus.SYNCING)
        report.dispatched.append(record.id)

        try:
            request = request_for_mutation(record)
            await self._api.send(request)
        except asyncio.CancelledError:
            self._store.update_status(QueueKind.MUTATIONS, record.id, QueueStatus.PENDING)
            logger.info(f"Mutation {record.id} ({record.label}) interrupted, back to pending")
            raise
        except Exception as e:
            message = _error_message(e)
            self._store.update_status(QueueKind.MUTATIONS, record.id, QueueStatus.FAILED, message)
            self._store.increment_retry_count(record.id)
            report.mutations_failed += 1
            logger.warning(f"Mutation {record.id} ({record.label}) failed: {message}")
            self._log(
                report,
                "item_failed",
                queue=QueueKind.MUTATIONS.value,
                record_id=record.id,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                action=record.action,
                error=message,
                error_type=type(e).__name__,
            )
            return

        self._store.remove(QueueKind.MUTATIONS, record.id)
        report.mutations_synced += 1
        self._log(
            report,
            "item_synced",
            queue=QueueKind.MUTATIONS.value,
            record_id=record.id,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            action=record.action,
            method=request.method,
            path=request.path,
        )

    async def _upload_image(self, image: PendingImage, report: SyncReport) -> None:
        """Upload one photo; mark it failed instead of raising. No retry counter."""
        self._store.update_status(QueueKind.IMAGES, image.id, QueueStatus.SYNCING)

        try:
            request = request_for_image(image)
            await self._api.upload(request)
        except asyncio.CancelledError:
            self._store.update_status(QueueKind.IMAGES, image.id, QueueStatus.PENDING)
            raise
        except Exception as e:
            message = _error_message(e)
            self._store.update_status(QueueKind.IMAGES, image.id, QueueStatus.FAILED)
            report.images_failed += 1
            logger.warning(f"Image {image.id} ({image.label}) failed: {message}")
            self._log(
                report,
                "item_failed",
                queue=QueueKind.IMAGES.value,
                record_id=image.id,
                entity_type=image.entity_type,
                entity_id=image.entity_id,
                error=message,
                error_type=type(e).__name__,
            )
            return

        self._store.remove(QueueKind.IMAGES, image.id)
        report.images_uploaded += 1
        self._log(
            report,
            "item_synced",
            queue=QueueKind.IMAGES.value,
            record_id=image.id,
            entity_type=image.entity_type,
            entity_id=image.entity_id,
            method=request.method,
            path=request.path,
        )

    def _log(self, report: SyncReport, event: str, **fields: Any) -> None:
        """Write one structured entry to sync.jsonl."""
        fields.setdefault("total", report.mutations_total)
        fields.setdefault("progress", self._state.state.sync_progress)
        entry = SyncLogEntry(
            timestamp=now_iso(),
            cycle_id=report.cycle_id,
            event=event,
            synced=report.mutations_synced + report.images_uploaded,
            failed=report.mutations_failed + report.images_failed,
            duration_ms=report.duration_ms,
            **fields,
        )
        sync_logger.info(entry.to_json())

    # =========================================================================
    # COUNTS & MAINTENANCE
    # =========================================================================

    def refresh_counts(self) -> None:
        """Re-query pending counts into the sync state."""
        try:
            pending_mutations = self._store.count_by_status(QueueKind.MUTATIONS, QueueStatus.PENDING)
            pending_images = self._store.count_by_status(QueueKind.IMAGES, QueueStatus.PENDING)
        except SynaxError as e:
            logger.error(f"Failed to update pending counts: {e}")
            return

        self._state.update(pending_mutations=pending_mutations, pending_images=pending_images)

    def refresh_database_stats(self) -> None:
        """Re-query cache and queue counts into the sync state."""
        try:
            stats = self._store.database_stats()
        except SynaxError as e:
            logger.error(f"Failed to update database stats: {e}")
            return

        self._state.update(
            cached_projects=stats.projects,
            cached_floors=stats.floors,
            cached_rooms=stats.rooms,
            cached_assets=stats.assets,
            pending_mutations=stats.pending_mutations,
            pending_images=stats.pending_images,
        )

    def clear_local_data(self) -> None:
        """
        Wipe the offline database (logout / account switch).

        Raises:
            SyncInProgressError: If a drain cycle is running
        """
        if self.is_syncing:
            raise SyncInProgressError("Cannot clear offline data while a sync is running")

        self._store.clear_all()
        self._state.update(sync_progress=0.0, sync_error=None)
        self.refresh_database_stats()
