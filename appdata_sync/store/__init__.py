"""
Key/value stores.

Provides the persistent and session-scoped stores plus the observer
that links local writes to the sync engine.
"""

from .base import KeyValueStore, MemoryStore
from .file_store import JsonFileStore
from .observed import LocalStoreObserver, ObservedStore, StorageChange

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "ObservedStore",
    "LocalStoreObserver",
    "StorageChange",
]
