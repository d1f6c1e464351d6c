"""
Shared-folder backend

Stores each key as <folder>/<prefix><key>.json. Useful with a folder that
another tool already replicates between machines (network share, synced
drive). Writes go through a temporary file and an atomic rename so readers
never see a half-written snapshot.
"""

from pathlib import Path
from typing import Optional, Dict, Any
import contextlib
import json
import os
import uuid

import aiofiles
import aiofiles.os

from .base import BackendAdapter
from ..errors import BackendError, ConfigurationError
from ..models import SyncProvider


class FileSystemBackend(BackendAdapter):
    """
    Backend over a local or mounted directory.

    Config keys:
        folder: Target directory (required, created on first upload)
        prefix: Optional filename prefix
    """

    provider = SyncProvider.FILESYSTEM

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        folder = self.config.get("folder")
        if not folder:
            raise ConfigurationError("Filesystem backend requires a 'folder' setting")
        self.folder = Path(os.path.expanduser(str(folder)))
        self.prefix = self.config.get("prefix", "")

    def _path_for(self, key: str) -> Path:
        return self.folder / f"{self.prefix}{key}.json"

    async def _upload(self, key: str, payload: Dict[str, Any]) -> Optional[str]:
        path = self._path_for(key)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(payload, indent=2, ensure_ascii=False))
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(tmp_path)
            raise BackendError(f"Failed to write {path}: {e}") from e
        return str(path)

    async def _download(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise BackendError(f"Failed to read {path}: {e}") from e

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise BackendError(f"Remote file {path} is not valid JSON: {e}") from e

    async def _delete(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        try:
            await aiofiles.os.remove(path)
        except OSError as e:
            raise BackendError(f"Failed to delete {path}: {e}") from e
        return True
