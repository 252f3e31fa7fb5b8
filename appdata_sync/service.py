"""
Drive sync service.

Wires the sync components into one instance with an explicit
lifecycle. Hosting applications talk to this class and subscribe to
its EventBus; nothing here is process-global, so several isolated
services can coexist.
"""

from __future__ import annotations

from typing import Any

from .config import CLIENT_ID_KEY, SyncConfig, load_config
from .drive.client import DriveClient
from .drive.resolver import RemoteFileResolver
from .events import EventBus, SyncStatus
from .exceptions import DriveSyncError, SnapshotParseError, StorageIOError
from .identity.session import AuthSession
from .identity.token_client import GoogleTokenClient, TokenClient
from .logging_utils import get_sync_logger
from .overlay.viewer import OverlayViewer, ReadOnlyMode
from .scope import SyncScope
from .store.base import KeyValueStore, MemoryStore
from .store.file_store import JsonFileStore
from .store.observed import LocalStoreObserver, ObservedStore
from .sync.engine import SyncEngine
from .sync.guard import ReloadLoopGuard

logger = get_sync_logger("service")


class DriveSyncService:
    """Synchronization and overlay engine for one application instance.

    Usage:
        >>> async with await DriveSyncService.from_config() as service:
        ...     service.events.subscribe(SyncEventType.REMOTE_DATA_LOADED, on_loaded)
        ...     await service.sign_in()
        ...     service.store.set_item("darkMode", "true")  # saved after the debounce
    """

    def __init__(
        self,
        persistent: KeyValueStore,
        session: KeyValueStore | None = None,
        config: SyncConfig | None = None,
        token_client: TokenClient | None = None,
        drive: DriveClient | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.config = config or SyncConfig()
        self.events = events or EventBus()

        self.store = persistent if isinstance(persistent, ObservedStore) else ObservedStore(persistent)
        self.session = session if session is not None else MemoryStore()

        self.token_client = token_client or GoogleTokenClient(client_secret=self.config.client_secret)
        self.drive = drive or DriveClient(
            token_client=self.token_client,
            api_key=self.config.api_key,
            timeout=self.config.request_timeout_seconds,
        )

        self.scope = SyncScope(self.config.include_patterns, self.config.exclude_keys)
        self.guard = ReloadLoopGuard(self.session)
        self.resolver = RemoteFileResolver(
            self.drive, self.store, self.config.file_name, self.config.space
        )
        self.auth = AuthSession(
            self.token_client,
            self.store,
            self.session,
            self.resolver,
            self.guard,
            self.events,
            self.config,
        )
        self.engine = SyncEngine(
            self.store,
            self.scope,
            self.drive,
            self.resolver,
            self.auth,
            self.guard,
            self.events,
            self.config,
        )
        self.read_only = ReadOnlyMode(self.session, self.events)
        self.viewer = OverlayViewer(self.store, self.session, self.read_only, self.events, self.config)
        self.observer = LocalStoreObserver(
            self.store, self.scope, self.engine, self.auth.get_signed_in, self.viewer.is_viewing
        )

        self.auth.on_signed_in = self._on_signed_in
        self.engine.on_synced = self._flush_store

    @classmethod
    async def from_config(cls, config: SyncConfig | None = None, **kwargs: Any) -> DriveSyncService:
        """Create a service backed by the JSON file store named in the config."""
        config = config or load_config()
        store = JsonFileStore(config.store_path)
        await store.load()
        return cls(store, config=config, **kwargs)

    async def __aenter__(self) -> DriveSyncService:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, view_file_id: str | None = None) -> bool:
        """Start the service.

        Args:
            view_file_id: Open this shared file in overlay mode, read with the
                API key rather than the user's token

        Returns:
            True if sync is configured and the auth session initialized
        """
        self.viewer.restore()

        if self.config.client_id and not self.has_client_id():
            self.set_client_id(self.config.client_id)

        if view_file_id:
            await self.open_shared_snapshot(view_file_id)

        ready = await self.auth.initialize()
        if ready:
            self.observer.attach()
        return ready

    async def close(self) -> None:
        self.observer.detach()
        await self.engine.close()
        await self.drive.close()
        await self.token_client.close()
        await self._flush_store()

    async def _flush_store(self) -> None:
        """Persist a file-backed store so synced state survives a crash."""
        inner = self.store.inner
        if not isinstance(inner, JsonFileStore):
            return
        try:
            await inner.flush()
        except StorageIOError as e:
            self.events.report_error("Cannot write local store", e)

    async def _on_signed_in(self) -> None:
        if self.viewer.is_viewing():
            logger.debug("Viewing a foreign snapshot, skipping remote load")
            return
        await self.engine.load_from_drive()

    # =========================================================================
    # Credential
    # =========================================================================

    def set_client_id(self, client_id: str) -> None:
        self.store.set_item(CLIENT_ID_KEY, client_id)

    def get_client_id(self) -> str | None:
        return self.store.get_item(CLIENT_ID_KEY)

    def has_client_id(self) -> bool:
        return bool(self.store.get_item(CLIENT_ID_KEY))

    # =========================================================================
    # Auth and sync
    # =========================================================================

    async def sign_in(self) -> bool:
        return await self.auth.sign_in()

    async def sign_out(self) -> None:
        await self.auth.sign_out()

    def get_signed_in(self) -> bool:
        return self.auth.get_signed_in()

    @property
    def status(self) -> SyncStatus:
        return self.engine.status

    def get_is_saving(self) -> bool:
        return self.engine.get_is_saving()

    def has_unsaved_changes(self) -> bool:
        return self.engine.has_unsaved_changes()

    async def manual_sync(self) -> bool:
        return await self.engine.manual_sync()

    async def reload_from_drive(self) -> dict[str, Any] | None:
        return await self.engine.reload_from_drive()

    def handle_storage_event(self, key: str | None, new_value: str | None = None) -> None:
        """Forward a change notification from another process sharing the store."""
        self.observer.handle_storage_event(key, new_value)

    # =========================================================================
    # Overlay
    # =========================================================================

    def is_viewing(self) -> bool:
        return self.viewer.is_viewing()

    def start_viewing(self, snapshot: Any) -> bool:
        return self.viewer.start_viewing(snapshot)

    def stop_viewing(self) -> bool:
        return self.viewer.stop_viewing()

    async def open_shared_snapshot(self, file_id: str) -> bool:
        """Fetch a shared file by id and view it in overlay mode."""
        try:
            data = await self.drive.get_public_file_content(file_id)
        except DriveSyncError as e:
            self.events.report_error(f"Cannot open shared file {file_id}", e)
            return False

        if not isinstance(data, dict):
            logger.warning(f"Shared file {file_id}: {SnapshotParseError(file_id)}")
            return False

        return self.viewer.start_viewing(data)
