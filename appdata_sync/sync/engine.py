"""
Synchronization engine.

Moves the sync-eligible part of the persistent store to and from the
remote file:
- Save: collect eligible keys -> JSON -> update (or create) the remote file
- Load: fetch the remote file -> overwrite eligible local keys
- Debounce: bursts of local writes collapse into one save

Saves are serialized by a single state machine (idle -> pending ->
saving). A write or save request that arrives while a save is in flight
is merged into one follow-up save instead of starting a second upload.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from ..config import SyncConfig
from ..events import EventBus, SyncEvent, SyncEventType, SyncStatus
from ..exceptions import RemoteFileNotFoundError
from ..logging_utils import SyncLoggerAdapter
from ..scope import SyncScope
from ..store.base import KeyValueStore
from .guard import ReloadLoopGuard

if TYPE_CHECKING:
    from ..drive.client import DriveClient
    from ..drive.resolver import RemoteFileResolver
    from ..identity.session import AuthSession

logger = logging.getLogger(__name__)


class SaveState(Enum):
    """Save pipeline state."""

    IDLE = "idle"
    PENDING = "pending"  # debounce timer armed
    SAVING = "saving"  # upload in flight


class SyncEngine:
    """Debounced, last-writer-wins sync between the local store and one remote file.

    Example:
        >>> engine = SyncEngine(store, scope, drive, resolver, auth, guard, events)
        >>> await engine.load_from_drive()
        >>> store.set_item("darkMode", "true")  # observer calls schedule_save()
    """

    def __init__(
        self,
        store: KeyValueStore,
        scope: SyncScope,
        drive: DriveClient,
        resolver: RemoteFileResolver,
        auth: AuthSession,
        guard: ReloadLoopGuard,
        events: EventBus,
        config: SyncConfig | None = None,
    ) -> None:
        self.store = store
        self.scope = scope
        self.drive = drive
        self.resolver = resolver
        self.auth = auth
        self.guard = guard
        self.events = events
        self.config = config or SyncConfig()
        self._log = SyncLoggerAdapter(logger, {"file_name": self.config.file_name})

        self._status = SyncStatus.IDLE
        self._save_state = SaveState.IDLE
        self._loading = False
        self._resave_requested = False

        self._debounce_handle: asyncio.TimerHandle | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._save_task: asyncio.Task[bool] | None = None
        self._inflight: asyncio.Future[bool] | None = None

        # Awaited after a save or load has changed local or remote state
        self.on_synced: Callable[[], Awaitable[Any]] | None = None

        self.events.subscribe(SyncEventType.SIGN_IN_CHANGED, self._on_sign_in_changed)

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def save_state(self) -> SaveState:
        return self._save_state

    @property
    def is_loading(self) -> bool:
        return self._loading

    def get_is_saving(self) -> bool:
        return self._save_state is SaveState.SAVING

    def has_unsaved_changes(self) -> bool:
        """True while a save is pending or in flight."""
        return self._save_state is not SaveState.IDLE

    # =========================================================================
    # Snapshot
    # =========================================================================

    def collect_sync_data(self) -> dict[str, str]:
        """Return every sync-eligible local record as a flat key -> value map."""
        return self.scope.filter(self.store.items())

    def apply_drive_data_to_local_storage(self, data: dict[str, Any]) -> None:
        """Overwrite local sync state with a remote snapshot.

        Eligible keys missing from the snapshot are removed; every
        non-excluded snapshot key is written.
        """
        for key in [k for k in self.store.keys() if self.scope.is_sync_eligible(k)]:
            self.store.remove_item(key)

        for key, value in data.items():
            if self.scope.is_excluded(key):
                continue
            self.store.set_item(key, value if isinstance(value, str) else json.dumps(value))

    # =========================================================================
    # Save
    # =========================================================================

    def schedule_save(self) -> None:
        """Arm (or re-arm) the debounce timer for a save.

        Ignored while a remote load is applying data, so loaded values are
        not echoed straight back to the remote file.
        """
        if self._loading:
            logger.debug("Load in progress, not scheduling a save")
            return

        if self._save_state is SaveState.SAVING:
            self._resave_requested = True
            return

        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(
            self.config.save_debounce_seconds, self._on_debounce_elapsed
        )
        self._save_state = SaveState.PENDING

    def _on_debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self._save_task = asyncio.ensure_future(self.save_to_drive())

    async def save_to_drive(self) -> bool:
        """Upload the current snapshot.

        Returns:
            True if the upload succeeded
        """
        if not self.auth.signed_in:
            self._discard_pending()
            return False

        if self._save_state is SaveState.SAVING and self._inflight is not None:
            # Merge into one follow-up save rather than uploading concurrently
            self._resave_requested = True
            return await asyncio.shield(self._inflight)

        self._cancel_debounce()
        self._save_state = SaveState.SAVING
        self._inflight = asyncio.get_running_loop().create_future()
        self._set_status(SyncStatus.SAVING)

        success = False
        try:
            content = json.dumps(self.collect_sync_data(), indent=2, ensure_ascii=False)
            file_id = await self._upload(content)
            success = True
            self._set_status(SyncStatus.SAVED)
            self._schedule_idle()
            self._log.bind(file_id=file_id).info("Saved state to remote file")
        except Exception as e:
            self.events.report_error("Save failed", e)
            self._set_status(SyncStatus.ERROR)
        finally:
            self._save_state = SaveState.IDLE
            inflight, self._inflight = self._inflight, None
            if inflight is not None and not inflight.done():
                inflight.set_result(success)
            if self._resave_requested:
                self._resave_requested = False
                self.schedule_save()

        if success:
            await self._notify_synced()
        return success

    async def _upload(self, content: str) -> str:
        file_id = self.resolver.cached_file_id
        if file_id:
            try:
                return await self.drive.update_file(file_id, content)
            except RemoteFileNotFoundError:
                logger.warning(f"Remote file {file_id} is gone, creating a new one")
                self.resolver.invalidate()

        return await self.resolver.create(content)

    async def manual_sync(self) -> bool:
        """Force an immediate save."""
        if not self.auth.signed_in:
            self.events.report_error("Not signed in")
            return False
        return await self.save_to_drive()

    # =========================================================================
    # Load
    # =========================================================================

    async def load_from_drive(self, force: bool = False) -> dict[str, Any] | None:
        """Fetch the remote snapshot and apply it locally.

        Skipped once the reload guard has tripped in this session unless
        ``force`` is set.

        Returns:
            The remote snapshot, or None when nothing was loaded
        """
        if not self.auth.signed_in:
            return None

        if self.guard.is_tripped() and not force:
            logger.debug("Remote data already loaded this session, skipping")
            self._set_status(SyncStatus.IDLE)
            return None

        self._loading = True
        self._set_status(SyncStatus.LOADING)
        try:
            file_id = await self.resolver.resolve()

            if not file_id:
                # Nothing remote yet: local state is authoritative
                self._loading = False
                self._set_status(SyncStatus.IDLE)
                logger.info("No remote file, uploading local state")
                self.guard.trip()
                await self.save_to_drive()
                return None

            data = await self.drive.get_file_content(file_id)

            if not isinstance(data, dict):
                logger.warning(f"Remote file {file_id} does not hold a JSON object, ignoring it")
                self._set_status(SyncStatus.IDLE)
                return None

            self.apply_drive_data_to_local_storage(data)
            self._loading = False
            self._set_status(SyncStatus.IDLE)
            self.guard.trip()
            self._log.bind(file_id=file_id).info(
                f"Loaded {len(data)} keys from remote file"
            )
            await self._notify_synced()
            if data:
                self.events.emit(SyncEventType.REMOTE_DATA_LOADED, data=data)
            return data

        except RemoteFileNotFoundError:
            logger.warning("Cached remote file id is stale, dropping it")
            self.resolver.invalidate()
            self._set_status(SyncStatus.IDLE)
            return None
        except Exception as e:
            self.events.report_error("Load failed", e)
            self._set_status(SyncStatus.ERROR)
            return None
        finally:
            self._loading = False

    async def reload_from_drive(self) -> dict[str, Any] | None:
        """Drop the cached file id and force a fresh load."""
        if not self.auth.signed_in:
            self.events.report_error("Not signed in")
            return None

        self.resolver.invalidate()
        return await self.load_from_drive(force=True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Cancel timers and wait for any in-flight save to finish."""
        self._cancel_debounce()
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        self._discard_pending()
        if self._save_task is not None and not self._save_task.done():
            await self._save_task

    def _discard_pending(self) -> None:
        if self._save_state is SaveState.PENDING:
            self._cancel_debounce()
            self._save_state = SaveState.IDLE

    def _on_sign_in_changed(self, event: SyncEvent) -> None:
        if not event.data.get("signed_in"):
            logger.debug("Signed out, discarding pending save")
            self._discard_pending()

    async def _notify_synced(self) -> None:
        if self.on_synced is not None:
            await self.on_synced()

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _schedule_idle(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(self.config.saved_display_seconds, self._revert_to_idle)

    def _revert_to_idle(self) -> None:
        self._idle_handle = None
        if self._status is SyncStatus.SAVED:
            self._set_status(SyncStatus.IDLE)

    def _set_status(self, status: SyncStatus) -> None:
        self._status = status
        self.events.emit(SyncEventType.SYNC_STATUS_CHANGED, status=status)
