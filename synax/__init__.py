"""
Synax Offline Sync - outbox and replay engine for the Synax field client.

Records domain changes made while offline in a durable local queue and
replays them against the Synax REST API once the network comes back.
"""

__version__ = "0.1.0"

from synax.exceptions import (
    ConfigError,
    StoreError,
    SyncError,
    SynaxError,
)

__all__ = [
    "__version__",
    "SynaxError",
    "ConfigError",
    "StoreError",
    "SyncError",
]
