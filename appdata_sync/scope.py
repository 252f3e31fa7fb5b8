"""
Sync scope.

Decides which local keys belong in the remote snapshot. Exclusion
always wins over inclusion.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .config import DEFAULT_EXCLUDE_KEYS, DEFAULT_INCLUDE_PATTERNS


class SyncScope:
    """Predicate over key names: ordered include patterns plus an exclusion set."""

    def __init__(
        self,
        include_patterns: Iterable[str] = DEFAULT_INCLUDE_PATTERNS,
        exclude_keys: Iterable[str] = DEFAULT_EXCLUDE_KEYS,
    ) -> None:
        self._patterns = [re.compile(p) for p in include_patterns]
        self._excluded = frozenset(exclude_keys)

    @property
    def include_patterns(self) -> list[str]:
        return [p.pattern for p in self._patterns]

    @property
    def exclude_keys(self) -> frozenset[str]:
        return self._excluded

    def is_excluded(self, key: str | None) -> bool:
        return key in self._excluded

    def matches(self, key: str | None) -> bool:
        """Check whether any include pattern matches the key."""
        if key is None:
            return False
        return any(p.search(key) for p in self._patterns)

    def is_sync_eligible(self, key: str | None) -> bool:
        if key is None or self.is_excluded(key):
            return False
        return self.matches(key)

    def filter(self, items: Iterable[tuple[str, str]]) -> dict[str, str]:
        """Keep only the sync-eligible (key, value) pairs."""
        return {k: v for k, v in items if self.is_sync_eligible(k)}
