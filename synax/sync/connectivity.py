"""
Connectivity Monitor

Turns network transitions into the is_online flag of the sync state and
starts a drain cycle when the connection comes back with changes waiting.

Sources are injected: ManualConnectivitySource is driven explicitly (tests,
hosts that already receive platform online/offline events), while
ProbeConnectivitySource polls the API health endpoint.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from synax.exceptions import SynaxError
from synax.logging import ConnectivityLogEntry, connectivity_logger, now_iso
from synax.state import SyncStateStore
from synax.store import LocalStore, QueueKind, QueueStatus
from synax.sync.engine import SyncEngine, SyncReport

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivitySource:
    """
    Base class for online/offline signals.

    Listeners are called with the new value on every real transition only;
    repeating the current value is not a transition. Listeners run on the
    event loop thread.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        """Current connectivity."""
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """
        Register a transition listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, online: bool) -> bool:
        """Record a new value and notify listeners if it changed."""
        if online == self._online:
            return False
        self._online = online
        for listener in list(self._listeners):
            listener(online)
        return True


class ManualConnectivitySource(ConnectivitySource):
    """Connectivity driven by explicit calls."""

    def set_online(self, online: bool) -> bool:
        """
        Report the current network state.

        Returns:
            True if this was a transition
        """
        return self._emit(bool(online))

    def set_online_threadsafe(self, loop: asyncio.AbstractEventLoop, online: bool) -> None:
        """Report network state from a thread other than the loop's."""
        loop.call_soon_threadsafe(self.set_online, online)


class ProbeConnectivitySource(ConnectivitySource):
    """
    Connectivity derived from periodically probing the API.

    Usage:
        source = ProbeConnectivitySource(lambda: api.ping("/health"), interval=15)
        asyncio.create_task(source.run(stop_event))
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[bool]],
        interval: float = 15.0,
        online: bool = False,
    ):
        super().__init__(online=online)
        self._probe = probe
        self.interval = interval

    async def check(self) -> bool:
        """Probe once and emit a transition if the result changed."""
        try:
            online = bool(await self._probe())
        except SynaxError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            online = False
        self._emit(online)
        return online

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Probe every interval seconds until stop is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.check()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass


class ConnectivityMonitor:
    """
    Feeds a connectivity source into the sync state and engine.

    On an online transition with pending mutations it schedules one
    engine.sync_now(); the engine's own guard decides whether that call
    actually runs a cycle, so flapping cannot start two at once. Going
    offline never cancels a running cycle.
    """

    def __init__(
        self,
        source: ConnectivitySource,
        state: SyncStateStore,
        store: LocalStore,
        engine: SyncEngine,
    ):
        self._source = source
        self._state = state
        self._store = store
        self._engine = engine
        self._unsubscribe: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()
        self.last_sync_task: asyncio.Task | None = None

        # Initial value comes from the source, not from a transition
        self._state.set_online(source.is_online)

    @property
    def running(self) -> bool:
        """Whether the monitor is subscribed to its source."""
        return self._unsubscribe is not None

    def start(self) -> None:
        """Begin listening for transitions."""
        if self._unsubscribe is None:
            self._unsubscribe = self._source.subscribe(self._on_transition)
            logger.debug(f"Connectivity monitor listening to {type(self._source).__name__}")

    def stop(self) -> None:
        """Stop listening. Sync tasks already scheduled keep running."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_transition(self, online: bool) -> None:
        self._state.set_online(online)

        pending = 0
        triggered = False
        if online:
            try:
                pending = self._store.count_by_status(QueueKind.MUTATIONS, QueueStatus.PENDING)
            except SynaxError as e:
                logger.error(f"Could not read pending count after reconnect: {e}")
            if pending > 0:
                self._schedule_sync()
                triggered = True

        logger.info(f"Network {'online' if online else 'offline'} (pending={pending})")
        connectivity_logger.info(
            ConnectivityLogEntry(
                timestamp=now_iso(),
                online=online,
                source=type(self._source).__name__,
                pending_mutations=pending,
                triggered_sync=triggered,
            ).to_json()
        )

    def _schedule_sync(self) -> None:
        task = asyncio.get_running_loop().create_task(self._engine.sync_now())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.last_sync_task = task

    async def wait_for_sync(self) -> SyncReport | None:
        """Await the most recently scheduled sync, if any."""
        if self.last_sync_task is None:
            return None
        return await self.last_sync_task

    async def drain(self) -> None:
        """Await every sync task still in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
