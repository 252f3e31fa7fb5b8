"""
App-data sync

Keeps a small set of preference and collection keys in sync with a
per-application Google Drive file, and offers a read-only overlay mode
for inspecting someone else's snapshot without touching local data.

Provides:
- Debounced, last-writer-wins saves of sync-eligible keys
- One load per session, guarded against reload loops
- Session-only OAuth tokens
- Overlay viewing of export-format and legacy snapshots

Usage:

    >>> from appdata_sync import DriveSyncService, SyncEventType
    >>> async with await DriveSyncService.from_config() as service:
    ...     service.events.subscribe(SyncEventType.SYNC_STATUS_CHANGED, print)
    ...     await service.sign_in()
"""

from .config import SyncConfig, load_config
from .drive import DriveClient, RemoteFileResolver
from .events import EventBus, SyncEvent, SyncEventType, SyncStatus

# Exceptions
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DriveSyncError,
    InitializationError,
    RemoteFileNotFoundError,
    RemoteRequestError,
    SnapshotParseError,
    StorageIOError,
    ValidationError,
)
from .identity import AccessToken, AuthSession, GoogleTokenClient, TokenClient
from .overlay import OverlayViewer, ReadOnlyMode, SnapshotShape, ViewingSnapshot
from .scope import SyncScope
from .service import DriveSyncService
from .store import (
    JsonFileStore,
    KeyValueStore,
    LocalStoreObserver,
    MemoryStore,
    ObservedStore,
    StorageChange,
)
from .sync import ReloadLoopGuard, SaveState, SyncEngine

__all__ = [
    # Service
    "DriveSyncService",
    "SyncConfig",
    "load_config",
    # Components
    "SyncScope",
    "SyncEngine",
    "SaveState",
    "ReloadLoopGuard",
    "AuthSession",
    "AccessToken",
    "TokenClient",
    "GoogleTokenClient",
    "DriveClient",
    "RemoteFileResolver",
    "OverlayViewer",
    "ReadOnlyMode",
    "ViewingSnapshot",
    "SnapshotShape",
    # Stores
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "ObservedStore",
    "LocalStoreObserver",
    "StorageChange",
    # Events
    "EventBus",
    "SyncEvent",
    "SyncEventType",
    "SyncStatus",
    # Exceptions
    "DriveSyncError",
    "ConfigurationError",
    "InitializationError",
    "AuthenticationError",
    "RemoteRequestError",
    "RemoteFileNotFoundError",
    "SnapshotParseError",
    "StorageIOError",
    "ValidationError",
]

__version__ = "0.1.0"
