"""
Local state store - durable per-device key/value storage

Holds the three synced collections plus the sync engine's own state
(device id, config, last sync time, offline queue). Values are plain
JSON-compatible structures.

Usage:
    store = JsonFileStateStore(Path("~/.meetingsync/state.json").expanduser())
    await store.set("meetingflow_meetings", [{"id": "m1", "title": "Kickoff"}])
    meetings = await store.get("meetingflow_meetings", [])
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import asyncio
import contextlib
import copy
import json
import logging

import aiofiles
import aiofiles.os

from .models import COLLECTIONS, normalize_data

logger = logging.getLogger(__name__)

# Storage keys for the synced collections
COLLECTION_KEYS = {
    "meetings": "meetingflow_meetings",
    "stakeholders": "meetingflow_stakeholders",
    "stakeholderCategories": "meetingflow_stakeholder_categories",
}

# Storage keys for sync engine state
DEVICE_ID_KEY = "sync_device_id"
DEVICE_INFO_KEY = "sync_device_info"
SYNC_CONFIG_KEY = "sync_config"
LAST_SYNC_TIME_KEY = "last_sync_time"
OPERATION_QUEUE_KEY = "sync_operation_queue"


class LocalStateStore(ABC):
    """
    Abstract base class for local state storage.

    Implementations must return deep copies from get() so callers can
    mutate results without touching stored state.
    """

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """
        Read a value.

        Args:
            key: Storage key
            default: Returned when the key is absent

        Returns:
            Stored value or default
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Write a value.

        Args:
            key: Storage key
            value: JSON-compatible value
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete a key (no-op when absent)"""
        pass

    async def read_collections(self) -> Dict[str, List[Dict[str, Any]]]:
        """Load meetings, stakeholders and categories as one data payload"""
        data = {}
        for name in COLLECTIONS:
            data[name] = await self.get(COLLECTION_KEYS[name], []) or []
        return normalize_data(data)

    async def write_collections(self, data: Dict[str, Any]) -> None:
        """Persist all three collections from a data payload"""
        data = normalize_data(data)
        for name in COLLECTIONS:
            await self.set(COLLECTION_KEYS[name], data[name])


class InMemoryStateStore(LocalStateStore):
    """Process-local store, mainly for tests and ephemeral sessions"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the whole store (for assertions)"""
        return copy.deepcopy(self._data)


class JsonFileStateStore(LocalStateStore):
    """
    Store backed by a single JSON document on disk.

    The document is cached after the first read. Every write rewrites the
    whole file through a temporary sibling and an atomic rename, so a crash
    mid-write leaves the previous version intact.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._cache: Optional[Dict[str, Any]] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Any]:
        if self._cache is not None:
            return self._cache

        if not self.path.exists():
            self._cache = {}
            return self._cache

        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            content = await f.read()

        try:
            loaded = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as e:
            raise ValueError(f"Corrupt state file {self.path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ValueError(f"Corrupt state file {self.path}: expected an object")

        self._cache = loaded
        logger.debug(f"Loaded {len(loaded)} keys from {self.path}")
        return self._cache

    async def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(self._cache, indent=2, ensure_ascii=False))
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(tmp_path)
            raise

    async def _commit(self, updates: Dict[str, Any], removals: Iterable[str] = ()) -> None:
        """
        Apply updates and removals to the cache and flush once.

        If the flush fails the cache is rolled back, so it keeps matching
        what is on disk.
        """
        async with self._lock:
            data = await self._load()
            previous = dict(data)

            changed = False
            for key, value in updates.items():
                data[key] = copy.deepcopy(value)
                changed = True
            for key in removals:
                if key in data:
                    del data[key]
                    changed = True
            if not changed:
                return

            try:
                await self._flush()
            except Exception as e:
                logger.error(f"Failed to write state file {self.path}: {e}")
                self._cache = previous
                raise

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._lock:
            data = await self._load()
            if key not in data:
                return default
            return copy.deepcopy(data[key])

    async def set(self, key: str, value: Any) -> None:
        await self._commit({key: value})

    async def remove(self, key: str) -> None:
        await self._commit({}, removals=[key])

    async def write_collections(self, data: Dict[str, Any]) -> None:
        """Persist all three collections in a single file write"""
        data = normalize_data(data)
        await self._commit({COLLECTION_KEYS[name]: data[name] for name in COLLECTIONS})
