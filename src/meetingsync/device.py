"""
Device identity for sync tracking

Each installation gets one stable id, generated on first use and kept in
the local state store. The human-readable name is derived from the
platform string so snapshots can say which device wrote them.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
import logging
import platform
import uuid

from .local_store import LocalStateStore, DEVICE_ID_KEY, DEVICE_INFO_KEY
from .models import now_iso

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "Unknown Device"

# Checked in order; the first substring found wins
_DEVICE_LABELS = (
    ("Mobile", "Mobile Device"),
    ("Tablet", "Tablet"),
    ("Windows", "Windows PC"),
    ("Mac", "Mac"),
    ("macOS", "Mac"),
    ("Darwin", "Mac"),
    ("Linux", "Linux PC"),
)


def device_name(platform_string: Any) -> str:
    """
    Map a platform or user-agent string to a human label.

    Never raises: anything unrecognized (including non-strings) is
    reported as "Unknown Device".

    Examples:
        >>> device_name("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Mobile/15E148")
        'Mobile Device'
        >>> device_name("Windows-10-10.0.19045-SP0")
        'Windows PC'
        >>> device_name(None)
        'Unknown Device'
    """
    if not isinstance(platform_string, str) or not platform_string:
        return UNKNOWN_DEVICE

    for needle, label in _DEVICE_LABELS:
        if needle in platform_string:
            return label
    return UNKNOWN_DEVICE


def default_platform_string() -> str:
    """Platform string for the current host, e.g. 'Linux-6.1.0-x86_64'"""
    try:
        return platform.platform()
    except Exception as e:
        logger.warning(f"Could not read platform information: {e}")
        return ""


@dataclass
class DeviceRecord:
    """Persisted description of this device"""
    id: str
    name: str
    last_seen: str
    platform: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "lastSeen": self.last_seen,
            "platform": self.platform,
        }


class DeviceIdentity:
    """
    Stable per-installation identity.

    Example:
        identity = DeviceIdentity(store)
        device_id = await identity.ensure_id()   # same value on every call
        record = await identity.ensure_record()  # refreshes lastSeen
    """

    def __init__(self, store: LocalStateStore, platform_string: Optional[str] = None):
        """
        Args:
            store: Local state store that persists the id
            platform_string: Override for the detected platform string
        """
        self.store = store
        self.platform_string = (
            platform_string if platform_string is not None else default_platform_string()
        )
        self._device_id: Optional[str] = None

    @property
    def name(self) -> str:
        return device_name(self.platform_string)

    async def ensure_id(self) -> str:
        """
        Return the persisted device id, creating it exactly once.

        Returns:
            Device id string
        """
        if self._device_id:
            return self._device_id

        device_id = await self.store.get(DEVICE_ID_KEY)
        if not device_id:
            device_id = str(uuid.uuid4())
            await self.store.set(DEVICE_ID_KEY, device_id)
            logger.info(f"Generated new device id {device_id}")

        self._device_id = device_id
        return device_id

    async def ensure_record(self) -> DeviceRecord:
        """Write the device record with a fresh lastSeen and return it"""
        record = DeviceRecord(
            id=await self.ensure_id(),
            name=self.name,
            last_seen=now_iso(),
            platform=self.platform_string,
        )
        await self.store.set(DEVICE_INFO_KEY, record.to_dict())
        logger.info(f"Device initialized for sync: {record.name} {record.id}")
        return record

    async def forget(self) -> None:
        """Drop the persisted identity (factory reset)"""
        await self.store.remove(DEVICE_ID_KEY)
        await self.store.remove(DEVICE_INFO_KEY)
        self._device_id = None
