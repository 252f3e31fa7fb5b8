"""
Local store observation.

``ObservedStore`` decorates a persistent store and reports every write
and removal made through it. ``LocalStoreObserver`` listens to those
reports, and to change notifications coming from other processes
sharing the store, and asks the sync engine to schedule a save when a
sync-eligible key changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from .base import KeyValueStore

if TYPE_CHECKING:
    from ..scope import SyncScope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageChange:
    """A single change to the persistent store."""

    key: str | None
    old_value: str | None = None
    new_value: str | None = None
    external: bool = False


StoreListener = Callable[[StorageChange], None]


class ObservedStore(KeyValueStore):
    """Store decorator that notifies listeners after every write or removal."""

    def __init__(self, inner: KeyValueStore) -> None:
        self.inner = inner
        self._listeners: list[StoreListener] = []

    def add_listener(self, listener: StoreListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get_item(self, key: str) -> str | None:
        return self.inner.get_item(key)

    def set_item(self, key: str, value: str) -> None:
        old = self.inner.get_item(key)
        self.inner.set_item(key, value)
        self._notify(StorageChange(key=key, old_value=old, new_value=self.inner.get_item(key)))

    def remove_item(self, key: str) -> None:
        old = self.inner.get_item(key)
        self.inner.remove_item(key)
        self._notify(StorageChange(key=key, old_value=old, new_value=None))

    def keys(self) -> list[str]:
        return self.inner.keys()

    def _notify(self, change: StorageChange) -> None:
        for listener in list(self._listeners):
            listener(change)


class SaveScheduler(Protocol):
    def schedule_save(self) -> None: ...


class LocalStoreObserver:
    """Forwards sync-eligible store changes to the sync engine.

    Changes are ignored while signed out and while a foreign snapshot is
    being viewed, so overlay values never reach the remote file. Read-only
    mode alone does not suppress sync; it can stay on after viewing ends.
    """

    def __init__(
        self,
        store: ObservedStore,
        scope: SyncScope,
        scheduler: SaveScheduler,
        is_signed_in: Callable[[], bool],
        is_viewing: Callable[[], bool] | None = None,
    ) -> None:
        self.store = store
        self.scope = scope
        self.scheduler = scheduler
        self.is_signed_in = is_signed_in
        self.is_viewing = is_viewing
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        """Start observing same-process writes."""
        if self._attached:
            return
        self.store.add_listener(self.handle_change)
        self._attached = True

    def detach(self) -> None:
        self.store.remove_listener(self.handle_change)
        self._attached = False

    def handle_change(self, change: StorageChange) -> None:
        if not self.is_signed_in():
            return
        if self.is_viewing is not None and self.is_viewing():
            logger.debug(f"Viewing a snapshot, not syncing change to {change.key}")
            return
        if not self.scope.is_sync_eligible(change.key):
            return
        self.scheduler.schedule_save()

    def handle_storage_event(
        self,
        key: str | None,
        new_value: str | None = None,
        old_value: str | None = None,
    ) -> None:
        """Entry point for change notifications from another process or tab."""
        self.handle_change(
            StorageChange(key=key, old_value=old_value, new_value=new_value, external=True)
        )
