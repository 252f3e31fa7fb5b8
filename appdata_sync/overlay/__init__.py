"""
Read-only overlay mode.

Provides the viewer that redirects state reads to a foreign snapshot
and the read-only switch it forces on while viewing.
"""

from .snapshot import SnapshotShape, ViewingSnapshot
from .viewer import OverlayViewer, ReadOnlyMode

__all__ = [
    "OverlayViewer",
    "ReadOnlyMode",
    "SnapshotShape",
    "ViewingSnapshot",
]
