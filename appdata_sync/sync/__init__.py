"""
Synchronization module.

Provides the debounced save/load engine and the one-shot guard that
stops the initial load from repeating within a session.
"""

from .engine import SaveState, SyncEngine
from .guard import ReloadLoopGuard

__all__ = [
    "SyncEngine",
    "SaveState",
    "ReloadLoopGuard",
]
