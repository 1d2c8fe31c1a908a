"""
Mutation Outbox - records offline domain changes

Front door for code that modifies data while offline: validates the change,
appends it to the durable queue and keeps the pending counts in the sync
state current.
"""

import logging
from typing import Any

from synax.exceptions import OutboxError
from synax.state import SyncStateStore
from synax.store import (
    EntityType,
    LocalStore,
    MutationAction,
    MutationRecord,
    PendingImage,
    QueueKind,
    QueueStatus,
)

logger = logging.getLogger(__name__)


class MutationOutbox:
    """
    Ordered outbox of offline changes.

    Usage:
        outbox = MutationOutbox(store, state)
        record = outbox.record("room", "r1", "update", {"name": "Lab 2"})
        outbox.record_image("issue", "i9", jpeg_bytes, "crack.jpg")
    """

    def __init__(self, store: LocalStore, state: SyncStateStore):
        self._store = store
        self._state = state

    def record(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        action: MutationAction | str,
        data: dict[str, Any] | None = None,
    ) -> MutationRecord:
        """
        Queue a domain change.

        Args:
            entity_type: Target entity type
            entity_id: Identifier of the affected remote entity
            action: create, update or delete
            data: Request body for the API

        Returns:
            The stored MutationRecord

        Raises:
            OutboxError: If the entity type, action or ids are invalid
        """
        try:
            entity = EntityType(entity_type)
        except ValueError:
            raise OutboxError(
                f"Unknown entity type: {entity_type}",
                {"valid": [e.value for e in EntityType]},
            )
        try:
            verb = MutationAction(action)
        except ValueError:
            raise OutboxError(
                f"Unknown action: {action}",
                {"valid": [a.value for a in MutationAction]},
            )
        if not entity_id:
            raise OutboxError("entity_id is required", {"entity_type": entity.value})
        if data is not None and not isinstance(data, dict):
            raise OutboxError("Mutation data must be a mapping", {"type": type(data).__name__})

        record_id = self._store.enqueue_mutation(entity.value, entity_id, verb.value, data or {})
        self._refresh_pending()

        record = self._store.get_mutation(record_id)
        logger.info(f"Recorded offline change {record_id}: {entity.value}/{verb.value} {entity_id}")
        return record  # type: ignore[return-value]

    def record_image(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        blob: bytes,
        filename: str,
        mutation_id: int | None = None,
    ) -> PendingImage:
        """
        Queue a photo upload.

        Raises:
            OutboxError: If the entity type is unknown or the image is empty
        """
        try:
            entity = EntityType(entity_type)
        except ValueError:
            raise OutboxError(
                f"Unknown entity type: {entity_type}",
                {"valid": [e.value for e in EntityType]},
            )
        if not blob:
            raise OutboxError("Image is empty", {"filename": filename})
        if not filename:
            raise OutboxError("filename is required", {"entity_type": entity.value})

        image_id = self._store.enqueue_image(
            entity.value, entity_id, blob, filename, mutation_id=mutation_id
        )
        self._refresh_pending()

        logger.info(f"Recorded offline photo {image_id}: {filename} for {entity.value} {entity_id}")
        return self._store.get_image(image_id)  # type: ignore[return-value]

    def pending(self) -> list[MutationRecord]:
        """Pending mutations in replay order."""
        return self._store.list_pending(QueueKind.MUTATIONS)  # type: ignore[return-value]

    def pending_images(self) -> list[PendingImage]:
        """Pending photo uploads in upload order."""
        return self._store.list_pending(QueueKind.IMAGES)  # type: ignore[return-value]

    def failed(self) -> list[MutationRecord]:
        """Mutations that failed their last replay."""
        return self._store.list_failed(QueueKind.MUTATIONS)  # type: ignore[return-value]

    def failed_images(self) -> list[PendingImage]:
        """Photos that failed their last upload."""
        return self._store.list_failed(QueueKind.IMAGES)  # type: ignore[return-value]

    def retry_failed(self, max_retries: int | None = None) -> tuple[int, int]:
        """
        Put failed items back in the pending pool for the next cycle.

        Args:
            max_retries: Leave mutations that already failed this many times

        Returns:
            (mutations reset, images reset)
        """
        mutations = self._store.reset_failed(QueueKind.MUTATIONS, max_retries=max_retries)
        images = self._store.reset_failed(QueueKind.IMAGES)
        self._refresh_pending()
        return mutations, images

    def recover_interrupted(self) -> tuple[int, int]:
        """
        Requeue items a crashed process left in 'syncing'.

        Must not run while a drain cycle is in progress, in this process or
        any other sharing the database.

        Returns:
            (mutations requeued, images requeued)
        """
        mutations = self._store.requeue_syncing(QueueKind.MUTATIONS)
        images = self._store.requeue_syncing(QueueKind.IMAGES)
        self._refresh_pending()
        return mutations, images

    def purge_failed(self) -> tuple[int, int]:
        """
        Drop every failed item.

        Returns:
            (mutations deleted, images deleted)
        """
        mutations = self._store.purge_failed(QueueKind.MUTATIONS)
        images = self._store.purge_failed(QueueKind.IMAGES)
        return mutations, images

    def _refresh_pending(self) -> None:
        self._state.update(
            pending_mutations=self._store.count_by_status(QueueKind.MUTATIONS, QueueStatus.PENDING),
            pending_images=self._store.count_by_status(QueueKind.IMAGES, QueueStatus.PENDING),
        )
