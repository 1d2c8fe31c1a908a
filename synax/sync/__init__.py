"""
Synax sync components.

Split into focused modules:
- mapping.py: typed mutations and their HTTP requests
- api.py: aiohttp client for the Synax API
- outbox.py: records offline changes
- engine.py: drains the outbox one cycle at a time
- connectivity.py: online/offline sources and the reconnect monitor
"""

from synax.sync.api import SynaxApiClient
from synax.sync.connectivity import (
    ConnectivityMonitor,
    ConnectivitySource,
    ManualConnectivitySource,
    ProbeConnectivitySource,
)
from synax.sync.engine import SyncEngine, SyncReport, SyncTransport
from synax.sync.mapping import (
    ApiRequest,
    UploadRequest,
    parse_mutation,
    request_for_image,
    request_for_mutation,
)
from synax.sync.outbox import MutationOutbox

__all__ = [
    "ApiRequest",
    "UploadRequest",
    "parse_mutation",
    "request_for_mutation",
    "request_for_image",
    "SynaxApiClient",
    "MutationOutbox",
    "SyncEngine",
    "SyncReport",
    "SyncTransport",
    "ConnectivitySource",
    "ManualConnectivitySource",
    "ProbeConnectivitySource",
    "ConnectivityMonitor",
]
