"""
Overlay viewer.

Lets the user browse someone else's snapshot through the same read
accessors used for local state. The snapshot is held in the session
store only; the persistent store is never written while viewing.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from ..config import READ_ONLY_KEY, VIEWING_KEY, SyncConfig
from ..events import EventBus, SyncEventType
from ..exceptions import SnapshotParseError
from ..store.base import KeyValueStore
from .snapshot import COUNT_PREFIX, ViewingSnapshot, decode_json_field, parse_count

logger = logging.getLogger(__name__)


class ReadOnlyMode:
    """Application-wide read-only switch.

    Kept in the session store so forcing it on for overlay mode leaves
    the persistent store untouched.
    """

    def __init__(self, store: KeyValueStore, events: EventBus, key: str = READ_ONLY_KEY) -> None:
        self.store = store
        self.events = events
        self.key = key

    def is_enabled(self) -> bool:
        return self.store.get_item(self.key) == "true"

    def set_enabled(self, enabled: bool) -> None:
        self.store.set_item(self.key, "true" if enabled else "false")
        self.events.emit(SyncEventType.READ_ONLY_CHANGED, enabled=enabled)

    def toggle(self) -> bool:
        enabled = not self.is_enabled()
        self.set_enabled(enabled)
        return enabled

    def check_and_warn(self, action: str = "this operation") -> bool:
        """Return True if ``action`` is allowed; log a warning and return False otherwise."""
        if self.is_enabled():
            logger.warning(f"Read-only mode: {action} is not allowed")
            return False
        return True


class OverlayViewer:
    """Session-scoped read redirection to a foreign snapshot."""

    def __init__(
        self,
        persistent: KeyValueStore,
        session: KeyValueStore,
        read_only: ReadOnlyMode,
        events: EventBus,
        config: SyncConfig | None = None,
    ) -> None:
        self.persistent = persistent
        self.session = session
        self.read_only = read_only
        self.events = events
        self.config = config or SyncConfig()

        self._decoded: tuple[str, ViewingSnapshot | None] | None = None
        self._reload_handle: asyncio.TimerHandle | None = None

    def is_viewing(self) -> bool:
        return self.session.get_item(VIEWING_KEY) is not None

    def restore(self) -> None:
        """Re-assert read-only mode when a viewing session survived a reload."""
        if self.is_viewing():
            logger.debug("Viewing session still active, forcing read-only mode")
            self.read_only.set_enabled(True)

    def start_viewing(self, snapshot: Any) -> bool:
        """Begin viewing ``snapshot``. Replaces any snapshot already being viewed.

        Returns:
            False if the snapshot is not an object or cannot be stored
        """
        if not isinstance(snapshot, dict):
            logger.error("Viewing data must be a JSON object")
            return False

        if self.is_viewing():
            self._clear()

        try:
            self.session.set_item(VIEWING_KEY, json.dumps(snapshot, ensure_ascii=False))
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot store viewing data: {e}")
            return False

        self.read_only.set_enabled(True)
        self.events.emit(SyncEventType.VIEWING_CHANGED, is_viewing=True)
        logger.info("Started viewing a foreign snapshot")
        return True

    def stop_viewing(self) -> bool:
        """End the viewing session and request a reload of in-memory state."""
        if not self.is_viewing():
            return False

        self._clear()
        logger.info("Stopped viewing, back to local data")
        self._schedule_reload()
        return True

    def get_viewing_data(self) -> dict[str, Any] | None:
        """Raw snapshot being viewed, or None."""
        raw = self.session.get_item(VIEWING_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable viewing data: {SnapshotParseError('session', e)}")
            return None
        return data if isinstance(data, dict) else None

    # =========================================================================
    # Read accessors
    # =========================================================================

    def get_card_count(self, card_id: str) -> int:
        if self.is_viewing():
            snapshot = self._snapshot()
            return snapshot.card_count(card_id) if snapshot else 0
        return parse_count(self.persistent.get_item(f"{COUNT_PREFIX}{card_id}"))

    def get_all_card_counts(self) -> dict[str, int]:
        if self.is_viewing():
            snapshot = self._snapshot()
            return snapshot.all_card_counts() if snapshot else {}
        return {
            key[len(COUNT_PREFIX):]: parse_count(value)
            for key, value in self.persistent.items()
            if key.startswith(COUNT_PREFIX)
        }

    def get_deck_data(self) -> Any:
        if self.is_viewing():
            snapshot = self._snapshot()
            return snapshot.deck_data if snapshot else None
        return self._read_json("deckData")

    def get_binder_collection(self) -> Any:
        if self.is_viewing():
            snapshot = self._snapshot()
            return snapshot.binder_collection if snapshot else None
        return self._read_json("binderCollection")

    def _read_json(self, key: str) -> Any:
        value = self.persistent.get_item(key)
        if not value:
            return None
        return decode_json_field(key, value)

    def _snapshot(self) -> ViewingSnapshot | None:
        """Decoded snapshot, cached per stored payload."""
        raw = self.session.get_item(VIEWING_KEY)
        if raw is None:
            return None
        if self._decoded is not None and self._decoded[0] == raw:
            return self._decoded[1]

        data = self.get_viewing_data()
        snapshot = None
        if data is not None:
            try:
                snapshot = ViewingSnapshot.decode(data)
            except SnapshotParseError as e:
                logger.warning(f"Ignoring viewing data: {e}")
        self._decoded = (raw, snapshot)
        return snapshot

    def _clear(self) -> None:
        self.session.remove_item(VIEWING_KEY)
        self._decoded = None
        self.events.emit(SyncEventType.VIEWING_CHANGED, is_viewing=False)

    def _schedule_reload(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._request_reload()
            return
        if self._reload_handle is not None:
            self._reload_handle.cancel()
        self._reload_handle = loop.call_later(self.config.reload_delay_seconds, self._request_reload)

    def _request_reload(self) -> None:
        self._reload_handle = None
        self.events.emit(SyncEventType.RELOAD_REQUESTED, reason="stopped_viewing")
