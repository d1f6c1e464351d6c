"""
Conflict detection between a local and a downloaded snapshot

A genuine conflict needs both a different device and different content,
outside a small clock-skew window. Everything else (own echo, rapid
re-syncs, re-uploads of unchanged content) is not a conflict.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import logging

from .models import Snapshot, parse_timestamp
from .versioning import checksum

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_WINDOW_MS = 10_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Conflict:
    """
    Details of concurrent edits on two devices.

    Attributes:
        local_timestamp: Local snapshot timestamp (ISO-8601)
        remote_timestamp: Remote snapshot timestamp (ISO-8601)
        local_device: Local device name
        remote_device: Remote device name
        delta_ms: Absolute time difference between the two snapshots
        type: Conflict classification
    """
    local_timestamp: Optional[str]
    remote_timestamp: Optional[str]
    local_device: str
    remote_device: str
    delta_ms: int
    type: str = "timestamp_device_mismatch"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "localTimestamp": self.local_timestamp,
            "remoteTimestamp": self.remote_timestamp,
            "localDevice": self.local_device,
            "remoteDevice": self.remote_device,
            "deltaMs": self.delta_ms,
        }


class ConflictDetector:
    """
    Decides whether two snapshots conflict.

    Example:
        detector = ConflictDetector()
        conflict = detector.detect(local_snapshot, remote_snapshot)
        if conflict:
            logger.info(f"Merging concurrent edits: {conflict.to_dict()}")
    """

    def __init__(self, window_ms: int = DEFAULT_CONFLICT_WINDOW_MS):
        """
        Args:
            window_ms: Timestamp differences below this are never conflicts
        """
        self.window_ms = window_ms

    def detect(self, local: Optional[Snapshot], remote: Optional[Snapshot]) -> Optional[Conflict]:
        """
        Compare two snapshots.

        Returns None when either side is missing, when the timestamps are
        within the window, when both came from the same device, or when
        the content checksums match.

        Args:
            local: Snapshot built from local state
            remote: Snapshot downloaded from the backend

        Returns:
            Conflict if the snapshots genuinely diverge, None otherwise
        """
        if local is None or remote is None:
            return None

        local_time = parse_timestamp(local.metadata.timestamp) or _EPOCH
        remote_time = parse_timestamp(remote.metadata.timestamp) or _EPOCH
        delta_ms = int(abs((remote_time - local_time).total_seconds()) * 1000)

        if delta_ms < self.window_ms:
            logger.debug(f"No conflict: snapshots {delta_ms}ms apart")
            return None

        if local.metadata.device_id == remote.metadata.device_id:
            logger.debug("No conflict: remote snapshot came from this device")
            return None

        local_checksum = checksum(local.data)
        remote_checksum = remote.metadata.checksum or checksum(remote.data)
        if local_checksum == remote_checksum:
            logger.debug("No conflict: content is identical")
            return None

        conflict = Conflict(
            local_timestamp=local.metadata.timestamp,
            remote_timestamp=remote.metadata.timestamp,
            local_device=local.metadata.device_name or "Unknown",
            remote_device=remote.metadata.device_name or "Unknown",
            delta_ms=delta_ms,
        )
        logger.info(
            f"Conflict detected between {conflict.local_device} and "
            f"{conflict.remote_device} ({delta_ms}ms apart)"
        )
        return conflict
