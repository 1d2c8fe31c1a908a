"""Shared fixtures: isolated config home, log directory, offline database and fake API."""

import asyncio

import pytest

from synax.logging import LogConfig, set_config
from synax.state import SyncStateStore
from synax.store import LocalStore
from synax.sync.engine import SyncEngine
from synax.sync.mapping import ApiRequest, UploadRequest


class FakeApi:
    """In-process stand-in for SynaxApiClient."""

    def __init__(self):
        self.calls: list[ApiRequest] = []
        self.uploads: list[UploadRequest] = []
        self.failures: dict[str, Exception] = {}
        self.upload_failures: dict[str, Exception] = {}
        self.started = asyncio.Event()
        self.gate: asyncio.Event | None = None
        self.on_send = None
        self.online = True
        self.closed = False

    async def send(self, request):
        self.calls.append(request)
        self.started.set()
        if self.on_send:
            self.on_send(request)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if request.path in self.failures:
            raise self.failures[request.path]
        return {"success": True}

    async def upload(self, request):
        self.uploads.append(request)
        await asyncio.sleep(0)
        if request.path in self.upload_failures:
            raise self.upload_failures[request.path]
        return {"success": True}

    async def ping(self, path="/health"):
        return self.online

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point config, credentials and structured logs at a temp directory."""
    home = tmp_path / "synax-home"
    monkeypatch.setenv("SYNAX_HOME", str(home))
    for name in (
        "SYNAX_TOKEN",
        "SYNAX_API_URL",
        "SYNAX_DB_PATH",
        "SYNAX_REQUEST_TIMEOUT",
        "SYNAX_MAX_RETRIES",
        "SYNAX_PROBE_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)

    set_config(LogConfig(log_dir=tmp_path / "logs"))
    return home


@pytest.fixture
def store():
    """In-memory offline database."""
    with LocalStore(":memory:") as s:
        yield s


@pytest.fixture
def state():
    """Fresh sync state, online."""
    return SyncStateStore()


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def engine(store, api, state):
    return SyncEngine(store, api, state)
