"""Storage API views package."""

from storage.api.files import (
    FileChunkUploadView,
    FileContentView,
    FileHistoryView,
    FileRestoreView,
    FileUploadView,
)
from storage.api.mounts import MountCreateView, MountScanView
from storage.api.nodes import (
    CollectionChildrenView,
    CollectionCreateView,
    NodeDetailView,
)

__all__ = [
    # File operations
    "FileUploadView",
    "FileChunkUploadView",
    "FileContentView",
    "FileHistoryView",
    "FileRestoreView",
    # Collections and nodes
    "CollectionCreateView",
    "CollectionChildrenView",
    "NodeDetailView",
    # Mounts
    "MountCreateView",
    "MountScanView",
]
