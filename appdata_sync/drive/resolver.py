"""
Remote file resolution.

Finds (or creates) the single app-data file that backs synchronized
state, and caches its id in the persistent store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..config import FILE_ID_KEY
from ..store.base import KeyValueStore

if TYPE_CHECKING:
    from .client import DriveClient

logger = logging.getLogger(__name__)


class RemoteFileResolver:
    """Resolves and caches the id of the remote sync file.

    Duplicates can exist when two clients create the file concurrently;
    the first match returned by the provider wins.
    """

    def __init__(
        self,
        drive: DriveClient,
        store: KeyValueStore,
        file_name: str,
        space: str = "appDataFolder",
    ) -> None:
        self.drive = drive
        self.store = store
        self.file_name = file_name
        self.space = space

    @property
    def cached_file_id(self) -> str | None:
        return self.store.get_item(FILE_ID_KEY) or None

    def remember(self, file_id: str) -> None:
        self.store.set_item(FILE_ID_KEY, file_id)

    def invalidate(self) -> None:
        """Forget the cached id so the next resolve searches by name."""
        if self.cached_file_id is not None:
            logger.debug(f"Dropping cached file id {self.cached_file_id}")
        self.store.remove_item(FILE_ID_KEY)

    async def resolve(self) -> str | None:
        """Return the cached id, or look the file up by name.

        Returns:
            The file id, or None if no remote file exists yet
        """
        file_id = self.cached_file_id
        if file_id:
            return file_id

        files = await self.drive.list_files(self.file_name, self.space)
        if not files:
            return None

        if len(files) > 1:
            logger.warning(f"Found {len(files)} files named {self.file_name}, using the first")

        file_id = files[0]["id"]
        self.remember(file_id)
        return file_id

    async def create(self, content: str) -> str:
        """Create the remote file and cache its id."""
        file_id = await self.drive.create_file(self.file_name, content, self.space)
        self.remember(file_id)
        logger.info(f"Created remote file {self.file_name} ({file_id})")
        return file_id
