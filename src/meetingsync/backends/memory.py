"""
In-process backend

Documents live in a plain dict. Pass the same dict to several adapters to
simulate multiple devices sharing one remote store.
"""

from typing import Optional, Dict, Any
import copy

from .base import BackendAdapter
from ..models import SyncProvider


class MemoryBackend(BackendAdapter):
    """
    Backend over a shared in-memory dict.

    Example:
        shared = {}
        device_a = MemoryBackend(store=shared)
        device_b = MemoryBackend(store=shared)
    """

    provider = SyncProvider.MEMORY

    def __init__(self, config: Optional[Dict[str, Any]] = None, store: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Unused apart from an optional "namespace" prefix
            store: Shared dict holding remote documents (default: private dict)
        """
        super().__init__(config)
        self.store: Dict[str, Any] = store if store is not None else {}
        self.namespace = self.config.get("namespace", "")

    def _object_key(self, key: str) -> str:
        return f"{self.namespace}/{key}" if self.namespace else key

    async def _upload(self, key: str, payload: Dict[str, Any]) -> Optional[str]:
        object_key = self._object_key(key)
        self.store[object_key] = copy.deepcopy(payload)
        return f"memory:{object_key}"

    async def _download(self, key: str) -> Optional[Dict[str, Any]]:
        document = self.store.get(self._object_key(key))
        return copy.deepcopy(document) if document is not None else None

    async def _delete(self, key: str) -> bool:
        return self.store.pop(self._object_key(key), None) is not None
