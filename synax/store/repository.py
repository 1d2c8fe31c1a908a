"""
Synax Local Store - offline database access layer

Provides all database operations for the offline client: the two outbox
queues (mutations and images) and the read cache of server documents.
Single connection per store instance, with context manager support.

Concurrency:
- SQLite in WAL mode, autocommit
- Every queue operation is a single statement and therefore atomic on its own
- The sync engine relies on that per-record atomicity only; no cross-record
  transaction is held while talking to the network
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Generator, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from synax.exceptions import StoreError
from synax.store.models import (
    CacheKind,
    CachedEntity,
    DatabaseStats,
    MutationRecord,
    PendingImage,
    QueueKind,
    QueueStatus,
    now_ms,
    to_json,
)

logger = logging.getLogger(__name__)

QueueItem = MutationRecord | PendingImage

_MUTATION_COLUMNS = "id, timestamp, entity_type, entity_id, action, data, status, retry_count, error"
_IMAGE_COLUMNS = "id, timestamp, mutation_id, entity_type, entity_id, blob, filename, status"

_TABLES = {
    QueueKind.MUTATIONS: ("mutations", _MUTATION_COLUMNS, MutationRecord),
    QueueKind.IMAGES: ("images", _IMAGE_COLUMNS, PendingImage),
}


class LocalStore:
    """
    Durable store for the offline outbox and read cache.

    Usage:
        store = LocalStore("/path/to/synax-offline.db")
        store.initialize()

        mutation_id = store.enqueue_mutation("room", "r1", "update", {"name": "Lab 2"})
        for record in store.iter_pending(QueueKind.MUTATIONS):
            ...

        # Or use in context manager for auto-cleanup
        with LocalStore(path) as store:
            ...
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize store.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._initialized = False

    def __enter__(self) -> LocalStore:
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get database connection, initializing if needed."""
        if self._conn is None:
            self.initialize()
        return self._conn  # type: ignore

    def initialize(self) -> None:
        """
        Open the database connection and apply the schema.

        Creates the database file and parent directories if they don't exist.

        Raises:
            StoreError: If the database cannot be opened
        """
        if self._initialized and self._conn:
            return

        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,  # single event loop thread owns it
                isolation_level=None,  # Autocommit mode, we use explicit transactions
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute("PRAGMA busy_timeout=5000")

            self._apply_schema()
        except (sqlite3.Error, OSError) as e:
            self._conn = None
            raise StoreError(
                f"Failed to open offline database at {self.db_path}",
                {"error": str(e)},
            ) from e

        self._initialized = True
        logger.info(f"Initialized offline database at {self.db_path}")

    def _apply_schema(self) -> None:
        """Apply the database schema from schema.sql."""
        schema_path = Path(__file__).parent / "schema.sql"

        with open(schema_path) as f:
            schema_sql = f.read()

        self._conn.executescript(schema_sql)  # type: ignore
        logger.debug("Offline database schema applied")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._initialized = False

    @contextmanager
    def _guard(self, operation: str) -> Generator[sqlite3.Cursor, None, None]:
        """Run one statement group, translating sqlite errors into StoreError."""
        try:
            cursor = self.conn.cursor()
        except sqlite3.Error as e:
            raise StoreError(f"Local store unavailable during {operation}", {"error": str(e)}) from e
        try:
            yield cursor
        except sqlite3.Error as e:
            logger.error(f"Local store {operation} failed: {e}")
            raise StoreError(f"Local store {operation} failed", {"error": str(e)}) from e
        finally:
            cursor.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """
        Execute operations in a transaction.

        Usage:
            with store.transaction() as cursor:
                cursor.execute(...)
        """
        with self._guard("transaction") as cursor:
            cursor.execute("BEGIN")
            try:
                yield cursor
                cursor.execute("COMMIT")
            except Exception:
                cursor.execute("ROLLBACK")
                raise

    # =========================================================================
    # OUTBOX WRITES
    # =========================================================================

    def enqueue_mutation(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        data: dict[str, Any],
        timestamp: int | None = None,
    ) -> int:
        """
        Append a pending mutation to the outbox.

        Args:
            entity_type: Target entity type (e.g. "room")
            entity_id: Identifier of the affected remote entity
            action: "create", "update" or "delete"
            data: Request body expected by the API for this entity/action
            timestamp: Creation time in ms; defaults to now

        Returns:
            The new record id
        """
        record = MutationRecord(
            timestamp=timestamp if timestamp is not None else now_ms(),
            entity_type=str(entity_type),
            entity_id=entity_id,
            action=str(action),
            data=dict(data),
        )
        with self._guard("enqueue_mutation") as cursor:
            cursor.execute(
                """INSERT INTO mutations
                   (timestamp, entity_type, entity_id, action, data, status, retry_count, error)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                record.to_row(),
            )
            record_id = int(cursor.lastrowid)

        logger.debug(f"Queued mutation {record_id}: {record.label}")
        return record_id

    def enqueue_image(
        self,
        entity_type: str,
        entity_id: str,
        blob: bytes,
        filename: str,
        mutation_id: int | None = None,
        timestamp: int | None = None,
    ) -> int:
        """
        Append a pending image upload.

        Returns:
            The new record id
        """
        image = PendingImage(
            timestamp=timestamp if timestamp is not None else now_ms(),
            mutation_id=mutation_id,
            entity_type=str(entity_type),
            entity_id=entity_id,
            blob=bytes(blob),
            filename=filename,
        )
        with self._guard("enqueue_image") as cursor:
            cursor.execute(
                """INSERT INTO images
                   (timestamp, mutation_id, entity_type, entity_id, blob, filename, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                image.to_row(),
            )
            image_id = int(cursor.lastrowid)

        logger.debug(f"Queued image {image_id}: {image.label} ({len(image.blob)} bytes)")
        return image_id

    # =========================================================================
    # OUTBOX READS
    # =========================================================================

    def iter_pending(self, kind: QueueKind) -> Iterator[QueueItem]:
        """
        Iterate pending items of one queue in replay order.

        Ordered by ascending timestamp, ties broken by id. Each call starts
        a fresh query, so the iterator can be restarted by calling again.
        """
        yield from self._iter_by_status(kind, QueueStatus.PENDING)

    def list_pending(self, kind: QueueKind) -> list[QueueItem]:
        """Materialise iter_pending() into a list (a cycle's work snapshot)."""
        return list(self.iter_pending(kind))

    def list_failed(self, kind: QueueKind) -> list[QueueItem]:
        """List failed items of one queue, oldest first."""
        return list(self._iter_by_status(kind, QueueStatus.FAILED))

    def _iter_by_status(self, kind: QueueKind, status: QueueStatus) -> Iterator[QueueItem]:
        table, columns, model = _TABLES[QueueKind(kind)]
        with self._guard(f"list {table}") as cursor:
            cursor.execute(
                f"SELECT {columns} FROM {table} WHERE status = ? ORDER BY timestamp, id",
                (status.value,),
            )
            rows = cursor.fetchall()
        for row in rows:
            try:
                item = model.from_row(row)
            except StoreError as e:
                raise StoreError(f"Corrupt row {row[0]} in {table}: {e.message}", e.details) from e
            yield item

    def get_mutation(self, record_id: int) -> MutationRecord | None:
        """Get a mutation by id."""
        with self._guard("get_mutation") as cursor:
            cursor.execute(f"SELECT {_MUTATION_COLUMNS} FROM mutations WHERE id = ?", (record_id,))
            row = cursor.fetchone()
        return MutationRecord.from_row(row) if row else None

    def get_image(self, image_id: int) -> PendingImage | None:
        """Get an image by id."""
        with self._guard("get_image") as cursor:
            cursor.execute(f"SELECT {_IMAGE_COLUMNS} FROM images WHERE id = ?", (image_id,))
            row = cursor.fetchone()
        return PendingImage.from_row(row) if row else None

    def count_by_status(self, kind: QueueKind, status: QueueStatus) -> int:
        """Count items of one queue in the given status."""
        table = _TABLES[QueueKind(kind)][0]
        with self._guard(f"count {table}") as cursor:
            cursor.execute(
                f"SELECT COUNT(*) FROM {table} WHERE status = ?",
                (QueueStatus(status).value,),
            )
            return int(cursor.fetchone()[0])

    # =========================================================================
    # OUTBOX STATUS TRANSITIONS
    # =========================================================================

    def update_status(
        self,
        kind: QueueKind,
        record_id: int,
        status: QueueStatus,
        error: str | None = None,
    ) -> None:
        """
        Set status and error of one queued item.

        retry_count is left alone; callers bump it with increment_retry_count().
        Images have no error column, so error is ignored for them.
        """
        kind = QueueKind(kind)
        status = QueueStatus(status)
        with self._guard("update_status") as cursor:
            if kind == QueueKind.MUTATIONS:
                cursor.execute(
                    "UPDATE mutations SET status = ?, error = ? WHERE id = ?",
                    (status.value, error, record_id),
                )
            else:
                cursor.execute(
                    "UPDATE images SET status = ? WHERE id = ?",
                    (status.value, record_id),
                )

    def increment_retry_count(self, record_id: int) -> None:
        """Bump the retry counter of a mutation by one."""
        with self._guard("increment_retry_count") as cursor:
            cursor.execute(
                "UPDATE mutations SET retry_count = retry_count + 1 WHERE id = ?",
                (record_id,),
            )

    def remove(self, kind: QueueKind, record_id: int) -> None:
        """Delete a queued item. Removing an unknown id is not an error."""
        table = _TABLES[QueueKind(kind)][0]
        with self._guard(f"remove from {table}") as cursor:
            cursor.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))

    def reset_failed(self, kind: QueueKind, max_retries: int | None = None) -> int:
        """
        Return failed items to the pending pool.

        Args:
            kind: Queue to reset
            max_retries: For mutations, only reset records whose retry_count
                is below this cap. Ignored for images.

        Returns:
            Number of items reset
        """
        kind = QueueKind(kind)
        with self._guard("reset_failed") as cursor:
            if kind == QueueKind.MUTATIONS and max_retries is not None:
                cursor.execute(
                    """UPDATE mutations SET status = 'pending', error = NULL
                       WHERE status = 'failed' AND retry_count < ?""",
                    (max_retries,),
                )
            elif kind == QueueKind.MUTATIONS:
                cursor.execute(
                    "UPDATE mutations SET status = 'pending', error = NULL WHERE status = 'failed'"
                )
            else:
                cursor.execute("UPDATE images SET status = 'pending' WHERE status = 'failed'")
            count = cursor.rowcount

        if count:
            logger.info(f"Reset {count} failed {kind.value} to pending")
        return count

    def requeue_syncing(self, kind: QueueKind) -> int:
        """
        Return items stuck in 'syncing' to the pending pool.

        A process that dies mid-cycle leaves its in-flight item in 'syncing'.
        Only call this while no cycle is running against the database.

        Returns:
            Number of items requeued
        """
        table = _TABLES[QueueKind(kind)][0]
        with self._guard(f"requeue {table}") as cursor:
            cursor.execute(f"UPDATE {table} SET status = 'pending' WHERE status = 'syncing'")
            count = cursor.rowcount

        if count:
            logger.warning(f"Requeued {count} interrupted {table}")
        return count

    def purge_failed(self, kind: QueueKind) -> int:
        """Delete every failed item of one queue. Returns number deleted."""
        table = _TABLES[QueueKind(kind)][0]
        with self._guard(f"purge {table}") as cursor:
            cursor.execute(f"DELETE FROM {table} WHERE status = 'failed'")
            count = cursor.rowcount

        if count:
            logger.warning(f"Purged {count} failed {table}")
        return count

    # =========================================================================
    # READ CACHE
    # =========================================================================

    def cache_entities(
        self,
        kind: CacheKind,
        rows: Iterable[dict[str, Any]],
        synced_at: int | None = None,
    ) -> int:
        """
        Upsert server documents into the read cache.

        Each row must carry an "id" field.

        Returns:
            Number of rows written
        """
        kind = CacheKind(kind)
        stamp = synced_at if synced_at is not None else now_ms()
        params = []
        for row in rows:
            if "id" not in row:
                raise StoreError("Cached entity is missing an id", {"kind": kind.value})
            params.append((kind.value, str(row["id"]), to_json(row), stamp))

        with self.transaction() as cursor:
            cursor.executemany(
                """INSERT INTO cached_entities (kind, id, data, synced_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(kind, id) DO UPDATE SET
                       data = excluded.data,
                       synced_at = excluded.synced_at""",
                params,
            )
        return len(params)

    def get_cached(self, kind: CacheKind, entity_id: str) -> CachedEntity | None:
        """Get one cached document."""
        with self._guard("get_cached") as cursor:
            cursor.execute(
                "SELECT kind, id, data, synced_at FROM cached_entities WHERE kind = ? AND id = ?",
                (CacheKind(kind).value, entity_id),
            )
            row = cursor.fetchone()
        return CachedEntity.from_row(row) if row else None

    def list_cached(self, kind: CacheKind) -> list[CachedEntity]:
        """List all cached documents of one kind."""
        with self._guard("list_cached") as cursor:
            cursor.execute(
                "SELECT kind, id, data, synced_at FROM cached_entities WHERE kind = ? ORDER BY id",
                (CacheKind(kind).value,),
            )
            return [CachedEntity.from_row(row) for row in cursor.fetchall()]

    def count_cached(self, kind: CacheKind) -> int:
        """Count cached documents of one kind."""
        with self._guard("count_cached") as cursor:
            cursor.execute(
                "SELECT COUNT(*) FROM cached_entities WHERE kind = ?",
                (CacheKind(kind).value,),
            )
            return int(cursor.fetchone()[0])

    # =========================================================================
    # STATS & MAINTENANCE
    # =========================================================================

    def database_stats(self) -> DatabaseStats:
        """Collect cache and queue counts in one pass."""
        return DatabaseStats(
            projects=self.count_cached(CacheKind.PROJECTS),
            floors=self.count_cached(CacheKind.FLOORS),
            rooms=self.count_cached(CacheKind.ROOMS),
            assets=self.count_cached(CacheKind.ASSETS),
            pending_mutations=self.count_by_status(QueueKind.MUTATIONS, QueueStatus.PENDING),
            pending_images=self.count_by_status(QueueKind.IMAGES, QueueStatus.PENDING),
            failed_mutations=self.count_by_status(QueueKind.MUTATIONS, QueueStatus.FAILED),
            failed_images=self.count_by_status(QueueKind.IMAGES, QueueStatus.FAILED),
        )

    def clear_all(self) -> None:
        """
        Wipe every table (logout / account switch).

        Any drain cycle still running loses its records silently; stop
        syncing before calling this.
        """
        with self.transaction() as cursor:
            cursor.execute("DELETE FROM mutations")
            cursor.execute("DELETE FROM images")
            cursor.execute("DELETE FROM cached_entities")
        logger.info("Cleared offline database")
