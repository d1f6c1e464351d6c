"""
Data model for cross-device sync

Snapshots, sync configuration, queue entries and results. Everything that
crosses a process or device boundary serializes with to_dict()/from_dict()
using the camelCase keys other devices already read.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Union
import copy

COLLECTIONS = ("meetings", "stakeholders", "stakeholderCategories")

DEFAULT_SYNC_INTERVAL_MS = 5 * 60 * 1000


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """
    Parse a record or metadata timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with or without a trailing Z), epoch
    milliseconds and datetimes. Naive values are taken as UTC.

    Returns:
        datetime, or None when the value is missing or unparseable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SyncStatus(Enum):
    """
    Orchestrator status.

    IDLE: Nothing in progress
    SYNCING: An upload or download is running
    SUCCESS: Last cycle completed
    ERROR: Last cycle failed (backend, integrity or auth)
    CONFLICT: Concurrent edits found, merge in progress
    OFFLINE: Device is offline, uploads are being queued
    """
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    CONFLICT = "conflict"
    OFFLINE = "offline"


class SyncProvider(Enum):
    """Remote storage providers a device can sync through"""
    GITHUB_GIST = "github_gist"
    GOOGLE_DRIVE = "google_drive"
    S3 = "s3"
    FILESYSTEM = "filesystem"
    MEMORY = "memory"

    @classmethod
    def parse(cls, value: Union[str, "SyncProvider"]) -> "SyncProvider":
        """Accept an enum member or its string value"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            supported = ", ".join(p.value for p in cls)
            raise ValueError(
                f"Invalid sync provider: '{value}'. Supported providers: {supported}"
            ) from None


@dataclass
class SyncConfig:
    """
    Persisted sync configuration.

    Attributes:
        provider: Which backend to sync through
        backend_config: Provider-specific settings (tokens, folder, bucket)
        enabled: Set only after a successful connection test
        auto_sync: Run the interval timer while enabled
        interval_ms: Auto-sync interval
        remote_key_ref: Backend-assigned handle (gist id, file id) for
                        updating the same remote object in place
        created_at: When the configuration was written
    """
    provider: SyncProvider
    backend_config: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = False
    auto_sync: bool = True
    interval_ms: int = DEFAULT_SYNC_INTERVAL_MS
    remote_key_ref: Optional[str] = None
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "provider": self.provider.value,
            "backendConfig": copy.deepcopy(self.backend_config),
            "enabled": self.enabled,
            "autoSync": self.auto_sync,
            "intervalMs": self.interval_ms,
            "remoteKeyRef": self.remote_key_ref,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncConfig":
        """Create SyncConfig from a persisted dictionary."""
        return cls(
            provider=SyncProvider.parse(data["provider"]),
            backend_config=dict(data.get("backendConfig") or {}),
            enabled=bool(data.get("enabled", False)),
            auto_sync=bool(data.get("autoSync", True)),
            interval_ms=int(data.get("intervalMs") or DEFAULT_SYNC_INTERVAL_MS),
            remote_key_ref=data.get("remoteKeyRef"),
            created_at=data.get("createdAt") or now_iso(),
        )


@dataclass
class SnapshotMetadata:
    """Who produced a snapshot, when, and its content fingerprint"""
    device_id: Optional[str]
    device_name: str
    timestamp: str
    checksum: Optional[str] = None
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "timestamp": self.timestamp,
            "version": self.version,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SnapshotMetadata":
        data = data or {}
        return cls(
            device_id=data.get("deviceId"),
            device_name=data.get("deviceName") or "Unknown",
            timestamp=data.get("timestamp") or "",
            checksum=data.get("checksum"),
            version=data.get("version"),
        )


def normalize_data(data: Optional[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Return a shallow copy of data with every collection present as a list"""
    data = data or {}
    return {name: list(data.get(name) or []) for name in COLLECTIONS}


def is_empty(data: Optional[Dict[str, Any]]) -> bool:
    """True when data holds zero meetings and zero stakeholders"""
    data = data or {}
    return not data.get("meetings") and not data.get("stakeholders")


def has_records(data: Optional[Dict[str, Any]]) -> bool:
    """True when any collection holds at least one record"""
    data = data or {}
    return any(data.get(name) for name in COLLECTIONS)


@dataclass
class Snapshot:
    """
    Point-in-time export of a device's collections, the unit exchanged
    with a backend.

    Example:
        snapshot = Snapshot(
            data={"meetings": [...], "stakeholders": [...], "stakeholderCategories": []},
            metadata=SnapshotMetadata(device_id="abc", device_name="Mac",
                                      timestamp=now_iso(), checksum="-1x2y")
        )
    """
    data: Dict[str, List[Dict[str, Any]]]
    metadata: SnapshotMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Snapshot":
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise ValueError("Snapshot payload must contain a 'data' object")
        return cls(
            data=normalize_data(payload["data"]),
            metadata=SnapshotMetadata.from_dict(payload.get("metadata")),
        )


@dataclass
class QueueEntry:
    """An upload accumulated while offline"""
    data: Dict[str, Any]
    action: str = "upload"
    enqueued_at: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "data": self.data,
            "enqueuedAt": self.enqueued_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueEntry":
        return cls(
            data=data.get("data") or {},
            action=data.get("action", "upload"),
            enqueued_at=data.get("enqueuedAt") or now_iso(),
        )


@dataclass
class SyncResult:
    """
    Structured outcome of an orchestrator operation.

    Attributes:
        success: Whether the operation completed
        queued: Upload was queued because the device is offline
        no_cloud_data: Nothing has been uploaded for this key yet
        offline: Device is offline
        data: Merged or resolved data, when the operation produced any
        timestamp: Sync time recorded on success
        error: Human-readable error message
        reason: Machine-readable failure class (not_configured, offline,
                backend_error, auth_expired, integrity_error, ...)
        auth_expired: Backend credentials need re-authentication
        conflict: Conflict details when concurrent edits were merged
    """
    success: bool
    queued: bool = False
    no_cloud_data: bool = False
    offline: bool = False
    data: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    auth_expired: bool = False
    conflict: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "queued": self.queued,
            "noCloudData": self.no_cloud_data,
            "offline": self.offline,
            "data": self.data,
            "timestamp": self.timestamp,
            "error": self.error,
            "reason": self.reason,
            "authExpired": self.auth_expired,
            "conflict": self.conflict,
        }
