"""
JSON file backed persistent store.

Reads and writes go to memory; ``load`` and ``flush`` move the whole
map to and from disk with an atomic temp-file + rename write.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError
from .base import MemoryStore


class JsonFileStore(MemoryStore):
    """Persistent store saved as a single JSON object on disk.

    Usage:
        >>> async with JsonFileStore.open(path) as store:
        ...     store.set_item("darkMode", "true")
        ...     # flushed on exit
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = path
        self._dirty = False
        self._flush_lock = asyncio.Lock()

    @classmethod
    def open(cls, path: Path) -> JsonFileStore:
        return cls(path)

    async def __aenter__(self) -> JsonFileStore:
        await self.load()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.flush()

    @property
    def dirty(self) -> bool:
        """True when memory holds changes not yet flushed."""
        return self._dirty

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._dirty = True

    def remove_item(self, key: str) -> None:
        if key in self._data:
            super().remove_item(key)
            self._dirty = True

    def clear(self) -> None:
        super().clear()
        self._dirty = True

    async def load(self) -> None:
        """Replace memory contents with the file's contents.

        A missing or empty file loads as an empty store.
        """
        try:
            if not await aiofiles.os.path.exists(self.path):
                self._data = {}
                self._dirty = False
                return
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise StorageIOError("read_store", str(self.path), e) from e

        try:
            data = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as e:
            raise StorageIOError("parse_store", str(self.path), e) from e

        if not isinstance(data, dict):
            raise StorageIOError("parse_store", str(self.path))

        self._data = {str(k): str(v) for k, v in data.items()}
        self._dirty = False

    async def flush(self) -> None:
        """Write memory contents to disk if anything changed.

        Flushes are serialized. Writes made while a flush is running leave
        the store dirty for the next one.
        """
        async with self._flush_lock:
            if not self._dirty:
                return
            content = json.dumps(self._data, indent=2, ensure_ascii=False)
            self._dirty = False
            try:
                await self._write(content)
            except StorageIOError:
                self._dirty = True
                raise

    async def _write(self, content: str) -> None:
        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create_directory", str(self.path.parent), e) from e

        try:
            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp_", suffix=".json")
        except OSError as e:
            raise StorageIOError("create_temp_file", str(self.path.parent), e) from e

        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(content)
                await f.flush()
                os.fsync(f.fileno())

            await aiofiles.os.rename(temp_path, self.path)
        except Exception as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise StorageIOError("write_store", str(self.path), e) from e
