"""
Key/value store abstraction.

Models the browser's string-only storage areas: the persistent store
that survives restarts and the session store that lives only as long
as the process.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator


class KeyValueStore(ABC):
    """Abstract string key/value store.

    Values are always strings; non-string values are coerced with ``str``.
    """

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the value for ``key`` or None if absent."""
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove ``key``. Removing an absent key is a no-op."""
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        """Return all keys in insertion order."""
        ...

    def items(self) -> Iterator[tuple[str, str]]:
        for key in self.keys():
            value = self.get_item(key)
            if value is not None:
                yield key, value

    def snapshot(self) -> dict[str, str]:
        """Copy of the whole store."""
        return dict(self.items())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get_item(key) is not None

    def __len__(self) -> int:
        return len(self.keys())


class MemoryStore(KeyValueStore):
    """Dict-backed store. Used as the session-scoped store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = {k: str(v) for k, v in (initial or {}).items()}

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def clear(self) -> None:
        self._data.clear()
