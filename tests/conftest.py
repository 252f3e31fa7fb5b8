"""
Shared test configuration and fixtures.

Provides in-memory fakes for the OAuth token client and the Drive API so
the sync components can be exercised without network access.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from appdata_sync.config import CLIENT_ID_KEY, SyncConfig
from appdata_sync.events import EventBus, SyncEvent, SyncEventType
from appdata_sync.exceptions import RemoteFileNotFoundError
from appdata_sync.identity.token_client import TokenClient
from appdata_sync.identity.types import AccessToken
from appdata_sync.service import DriveSyncService
from appdata_sync.store.base import MemoryStore


class FakeTokenClient(TokenClient):
    """Token client that grants tokens without a browser."""

    def __init__(
        self,
        loads: bool = True,
        load_error: Exception | None = None,
        response: dict[str, Any] | None = None,
        revoke_error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.loads = loads
        self.load_error = load_error
        self.response = response
        self.revoke_error = revoke_error
        self._loaded = False
        self.prompts: list[str] = []
        self.revoked: list[str] = []
        self.closed = False

    def is_loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        if self.load_error is not None:
            raise self.load_error
        if not self.loads:
            await asyncio.sleep(3600)
        self._loaded = True

    async def request_access_token(self, prompt: str = "") -> None:
        self.prompts.append(prompt)
        response = dict(self.response or {"access_token": "token-abc", "expires_in": 3600})
        if "error" not in response:
            self._token = AccessToken.from_dict(response)
        await self._deliver(response)

    async def revoke(self, access_token: str) -> None:
        self.revoked.append(access_token)
        if self.revoke_error is not None:
            raise self.revoke_error

    async def close(self) -> None:
        self.closed = True


class FakeDriveClient:
    """In-memory stand-in for DriveClient."""

    def __init__(self) -> None:
        self.files: dict[str, dict[str, str]] = {}
        self.public: dict[str, Any] = {}
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self.update_gate: asyncio.Event | None = None
        self._counter = 0

    def add_file(self, name: str, data: Any, file_id: str | None = None) -> str:
        self._counter += 1
        file_id = file_id or f"file-{self._counter}"
        self.files[file_id] = {"name": name, "content": json.dumps(data)}
        return file_id

    def content(self, file_id: str) -> Any:
        return json.loads(self.files[file_id]["content"])

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    @property
    def uploads(self) -> int:
        return self.count("create") + self.count("update")

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    async def list_files(self, name: str, space: str = "appDataFolder") -> list[dict[str, Any]]:
        self.calls.append(("list", name))
        self._check()
        return [{"id": fid, "name": f["name"]} for fid, f in self.files.items() if f["name"] == name]

    async def get_file_content(self, file_id: str) -> Any:
        self.calls.append(("get", file_id))
        self._check()
        if file_id not in self.files:
            raise RemoteFileNotFoundError("get_file", file_id)
        return self.content(file_id)

    async def get_public_file_content(self, file_id: str) -> Any:
        self.calls.append(("get_public", file_id))
        self._check()
        if file_id not in self.public:
            raise RemoteFileNotFoundError("get_public_file", file_id)
        return self.public[file_id]

    async def create_file(self, name: str, content: str, space: str = "appDataFolder") -> str:
        self.calls.append(("create", name))
        self._check()
        self._counter += 1
        file_id = f"file-{self._counter}"
        self.files[file_id] = {"name": name, "content": content}
        return file_id

    async def update_file(self, file_id: str, content: str) -> str:
        self.calls.append(("update", file_id))
        if self.update_gate is not None:
            await self.update_gate.wait()
        self._check()
        if file_id not in self.files:
            raise RemoteFileNotFoundError("update_file", file_id)
        self.files[file_id]["content"] = content
        return file_id

    async def close(self) -> None:
        pass


class EventRecorder:
    """Collects every event emitted on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[SyncEvent] = []
        for event_type in SyncEventType:
            bus.subscribe(event_type, self.events.append)

    def of(self, event_type: SyncEventType) -> list[SyncEvent]:
        return [e for e in self.events if e.event_type is event_type]

    def statuses(self) -> list[str]:
        return [e.data["status"].value for e in self.of(SyncEventType.SYNC_STATUS_CHANGED)]


@pytest.fixture
def config(tmp_path) -> SyncConfig:
    """Config with millisecond-scale timings."""
    return SyncConfig(
        file_name="state.json",
        save_debounce_seconds=0.05,
        saved_display_seconds=0.02,
        library_wait_seconds=0.2,
        library_poll_interval_seconds=0.01,
        reload_delay_seconds=0.02,
        data_dir=tmp_path,
    )


@pytest.fixture
def token_client() -> FakeTokenClient:
    return FakeTokenClient()


@pytest.fixture
def drive() -> FakeDriveClient:
    return FakeDriveClient()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(events) -> EventRecorder:
    return EventRecorder(events)


@pytest.fixture
def persistent() -> MemoryStore:
    return MemoryStore({CLIENT_ID_KEY: "client-123"})


@pytest.fixture
async def service(persistent, config, token_client, drive, events):
    """Service wired to fakes, not yet started."""
    svc = DriveSyncService(
        persistent,
        config=config,
        token_client=token_client,
        drive=drive,
        events=events,
    )
    yield svc
    await svc.close()


@pytest.fixture
async def signed_in_service(service):
    """Started and signed-in service (the initial load has already run)."""
    await service.start()
    await service.sign_in()
    return service
