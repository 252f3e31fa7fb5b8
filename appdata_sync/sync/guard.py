"""Reload loop guard."""

from ..config import RELOAD_FLAG_KEY
from ..store.base import KeyValueStore


class ReloadLoopGuard:
    """One-shot, session-scoped flag recording that the initial load happened.

    Once tripped, further loads in the same session are skipped, which
    breaks the load -> reload -> load cycle. Sign-out resets it. Because
    it lives in the session store, every new session performs exactly
    one fresh load.
    """

    def __init__(self, session_store: KeyValueStore, key: str = RELOAD_FLAG_KEY) -> None:
        self.session_store = session_store
        self.key = key

    def is_tripped(self) -> bool:
        return self.session_store.get_item(self.key) == "true"

    def trip(self) -> None:
        self.session_store.set_item(self.key, "true")

    def reset(self) -> None:
        self.session_store.remove_item(self.key)
