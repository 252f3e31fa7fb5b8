"""
Sync notifications.

Collaborators observe the engine through an EventBus instead of
polling its state.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SyncEventType(Enum):
    """Types of sync events."""

    SIGN_IN_CHANGED = "sign_in_changed"
    SYNC_STATUS_CHANGED = "sync_status_changed"
    SYNC_ERROR = "sync_error"
    REMOTE_DATA_LOADED = "remote_data_loaded"
    VIEWING_CHANGED = "viewing_changed"
    READ_ONLY_CHANGED = "read_only_changed"
    RELOAD_REQUESTED = "reload_requested"


class SyncStatus(Enum):
    """Transient status of the sync engine. Broadcast only, never persisted."""

    IDLE = "idle"
    LOADING = "loading"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass
class SyncEvent:
    """A notification emitted by a sync component."""

    event_type: SyncEventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


EventHandler = Callable[[SyncEvent], Any]


class EventBus:
    """Fan-out of sync events to subscribed handlers.

    Handlers may be plain callables or coroutine functions; coroutines
    are scheduled on the running loop. A failing handler is logged and
    never interrupts the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[SyncEventType, list[EventHandler]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, event_type: SyncEventType, handler: EventHandler) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, event_type: SyncEventType, **data: Any) -> SyncEvent:
        """Deliver an event to every handler subscribed to its type."""
        event = SyncEvent(event_type=event_type, data=data)

        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
            except Exception:
                logger.exception(f"Event handler failed for {event_type.value}")

        return event

    def report_error(self, message: str, exc: BaseException | None = None) -> None:
        """Log an error and broadcast it as a sync_error event."""
        if exc is not None:
            logger.error(f"{message}: {exc}")
            self.emit(SyncEventType.SYNC_ERROR, message=f"{message}: {exc}")
        else:
            logger.error(message)
            self.emit(SyncEventType.SYNC_ERROR, message=message)
