"""
Synax Offline Sync Logging System.

Provides structured JSONL logging for:
- Drain cycles (start, per-item outcome, completion or abort)
- Connectivity transitions (online/offline, whether a sync was triggered)

Usage:
    from synax.logging import sync_logger, SyncLogEntry, now_iso

    sync_logger.info(
        SyncLogEntry(
            timestamp=now_iso(),
            cycle_id=cycle_id,
            event="cycle_start",
            total=12,
        ).to_json()
    )

Logs are written to ~/.synax/logs/:
    - sync.jsonl: drain cycle events
    - connectivity.jsonl: network transitions
"""

import threading
from typing import Any

from .config import LogConfig, get_config, set_config
from .entries import ConnectivityLogEntry, SyncLogEntry, now_iso
from .handlers import create_jsonl_logger

# Lazy-initialized loggers to avoid creating files before needed
_sync_logger: Any = None
_connectivity_logger: Any = None
_configured_for: LogConfig | None = None
_init_lock = threading.Lock()


def _ensure_loggers() -> None:
    """Initialize loggers on first use, or again after set_config()."""
    global _sync_logger, _connectivity_logger, _configured_for

    config = get_config()
    if _configured_for is config:
        return

    with _init_lock:
        # Double-check after acquiring lock
        if _configured_for is config:
            return

        console_level = config.console_level if config.console_enabled else None

        _sync_logger = create_jsonl_logger(
            "synax.sync",
            config.sync_log_path,
            level=config.sync_level,
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
            console_level=console_level,
        )

        _connectivity_logger = create_jsonl_logger(
            "synax.connectivity",
            config.connectivity_log_path,
            level=config.connectivity_level,
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
            console_level=console_level,
        )

        _configured_for = config


class _LazyLogger:
    """Lazy wrapper that initializes the actual logger on first use."""

    def __init__(self, name: str):
        self._name = name

    def _get_logger(self) -> Any:
        _ensure_loggers()
        if self._name == "sync":
            return _sync_logger
        return _connectivity_logger

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().error(msg, *args, **kwargs)


# Public logger instances
sync_logger = _LazyLogger("sync")
connectivity_logger = _LazyLogger("connectivity")


__all__ = [
    # Loggers
    "sync_logger",
    "connectivity_logger",
    # Log entries
    "SyncLogEntry",
    "ConnectivityLogEntry",
    # Utilities
    "now_iso",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]
