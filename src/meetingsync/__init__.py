"""
meetingsync - cross-device sync for meetings, stakeholders and categories

Devices exchange checksummed snapshots through a pluggable backend
(GitHub Gist, Google Drive, S3, a shared folder). Concurrent edits are
detected and merged record by record so nothing is lost.

Usage:
    from meetingsync import SyncOrchestrator, JsonFileStateStore

    orchestrator = SyncOrchestrator(JsonFileStateStore(path))
    await orchestrator.initialize()
    await orchestrator.configure("filesystem", {"folder": "~/Dropbox/meetingflow"})
    await orchestrator.sync()
"""

from .backends import (
    BackendAdapter,
    DownloadResult,
    UploadResult,
    create_backend,
)
from .conflict_detector import Conflict, ConflictDetector
from .device import DeviceIdentity, device_name
from .errors import (
    SyncError,
    ConfigurationError,
    ConnectivityError,
    BackendError,
    BackendAuthError,
    BackendConnectionError,
    IntegrityError,
    ConflictDetected,
)
from .listeners import ListenerRegistry, SyncEvent
from .local_store import InMemoryStateStore, JsonFileStateStore, LocalStateStore
from .merge import MergeEngine
from .models import (
    QueueEntry,
    Snapshot,
    SnapshotMetadata,
    SyncConfig,
    SyncProvider,
    SyncResult,
    SyncStatus,
)
from .orchestrator import SyncOrchestrator
from .scheduler import AutoSyncTimer
from .versioning import checksum, version

__version__ = "0.1.0"

__all__ = [
    "SyncOrchestrator",
    "AutoSyncTimer",
    "BackendAdapter",
    "UploadResult",
    "DownloadResult",
    "create_backend",
    "Conflict",
    "ConflictDetector",
    "DeviceIdentity",
    "device_name",
    "SyncError",
    "ConfigurationError",
    "ConnectivityError",
    "BackendError",
    "BackendAuthError",
    "BackendConnectionError",
    "IntegrityError",
    "ConflictDetected",
    "ListenerRegistry",
    "SyncEvent",
    "LocalStateStore",
    "InMemoryStateStore",
    "JsonFileStateStore",
    "MergeEngine",
    "QueueEntry",
    "Snapshot",
    "SnapshotMetadata",
    "SyncConfig",
    "SyncProvider",
    "SyncResult",
    "SyncStatus",
    "checksum",
    "version",
]
