"""
Sync backends - remote storage providers behind one adapter contract
"""

from typing import Optional, Dict, Any, Type, Union

from .base import (
    BackendAdapter,
    UploadResult,
    DownloadResult,
    BackendError,
    BackendAuthError,
    BackendConnectionError,
)
from .filesystem import FileSystemBackend
from .github_gist import GitHubGistBackend
from .google_drive import GoogleDriveBackend
from .memory import MemoryBackend
from .s3 import S3Backend
from ..models import SyncProvider

BACKENDS: Dict[SyncProvider, Type[BackendAdapter]] = {
    SyncProvider.GITHUB_GIST: GitHubGistBackend,
    SyncProvider.GOOGLE_DRIVE: GoogleDriveBackend,
    SyncProvider.S3: S3Backend,
    SyncProvider.FILESYSTEM: FileSystemBackend,
    SyncProvider.MEMORY: MemoryBackend,
}


def create_backend(
    provider: Union[str, SyncProvider],
    backend_config: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> BackendAdapter:
    """
    Create a backend adapter for a provider.

    Args:
        provider: SyncProvider or its string value ("github_gist", "s3", ...)
        backend_config: Provider-specific settings
        **kwargs: Passed through to the adapter (e.g. client=, store=)

    Returns:
        BackendAdapter instance

    Raises:
        ValueError: If the provider is unknown
        ConfigurationError: If required settings are missing
        ImportError: If the provider's optional package is not installed

    Examples:
        >>> backend = create_backend("memory")
        >>> isinstance(backend, MemoryBackend)
        True
    """
    backend_class = BACKENDS[SyncProvider.parse(provider)]
    return backend_class(backend_config or {}, **kwargs)


__all__ = [
    "BackendAdapter",
    "UploadResult",
    "DownloadResult",
    "BackendError",
    "BackendAuthError",
    "BackendConnectionError",
    "FileSystemBackend",
    "GitHubGistBackend",
    "GoogleDriveBackend",
    "MemoryBackend",
    "S3Backend",
    "BACKENDS",
    "create_backend",
]
