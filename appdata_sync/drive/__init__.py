"""
Remote file store access.

Provides the Drive REST client and the resolver that finds the
single app-data file backing synchronized state.
"""

from .client import DriveClient
from .resolver import RemoteFileResolver

__all__ = [
    "DriveClient",
    "RemoteFileResolver",
]
