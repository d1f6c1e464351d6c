"""
Backend adapters - uniform upload/download contract over remote storage

Every provider (GitHub Gist, Google Drive, S3, a shared folder, memory)
implements three raising hooks: _upload, _download and _delete. The base
class wraps them into the public contract, which never raises:

    upload(key, payload)  -> UploadResult(success, remote_ref, error, auth_expired)
    download(key)         -> DownloadResult(success, data, error, auth_expired)
    delete(key)           -> bool

download() returns data=None, not an error, when nothing was uploaded yet.
Adapters with time-limited credentials refresh them in
_ensure_credentials() before each call; a failed refresh surfaces as
auth_expired=True so callers can ask the user to re-authenticate.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any
import copy
import logging

from ..errors import BackendError, BackendAuthError, BackendConnectionError
from ..models import SyncProvider

logger = logging.getLogger(__name__)

__all__ = [
    "BackendAdapter",
    "UploadResult",
    "DownloadResult",
    "BackendError",
    "BackendAuthError",
    "BackendConnectionError",
]


@dataclass
class UploadResult:
    """Outcome of an upload"""
    success: bool
    remote_ref: Optional[str] = None
    error: Optional[str] = None
    auth_expired: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "remoteRef": self.remote_ref,
            "error": self.error,
            "authExpired": self.auth_expired,
        }


@dataclass
class DownloadResult:
    """Outcome of a download; data is None when nothing exists remotely"""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    auth_expired: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "authExpired": self.auth_expired,
        }


class BackendAdapter(ABC):
    """
    Abstract base class for sync backends.

    Subclasses set `provider` and implement the raising hooks. Remote
    handles (gist id, Drive file id, ...) returned by uploads are
    remembered per key so later uploads update the same object in place.

    Attributes:
        config: Provider-specific configuration (may be updated by
                credential refresh; see consume_config_change)
    """

    provider: SyncProvider

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Provider-specific configuration map
        """
        self.config: Dict[str, Any] = dict(config or {})
        self._refs: Dict[str, str] = {}
        self._config_changed = False

    # -- remote handles -------------------------------------------------

    def remember_ref(self, key: str, remote_ref: Optional[str]) -> None:
        """Seed the handle for a key (e.g. from a persisted SyncConfig)"""
        if remote_ref:
            self._refs[key] = remote_ref

    def ref_for(self, key: str) -> Optional[str]:
        return self._refs.get(key)

    def forget_ref(self, key: str) -> None:
        self._refs.pop(key, None)

    # -- credential bookkeeping -----------------------------------------

    def mark_config_changed(self) -> None:
        """Called by subclasses after refreshing credentials in self.config"""
        self._config_changed = True

    def consume_config_change(self) -> Optional[Dict[str, Any]]:
        """
        Return the updated config once after a credential refresh.

        Returns:
            Copy of self.config if it changed since the last call, else None
        """
        if not self._config_changed:
            return None
        self._config_changed = False
        return copy.deepcopy(self.config)

    async def _ensure_credentials(self) -> None:
        """
        Make sure credentials are usable before a call.

        Raises:
            BackendAuthError: If credentials are missing or refresh failed
        """
        return None

    # -- public contract ------------------------------------------------

    async def upload(self, key: str, payload: Dict[str, Any]) -> UploadResult:
        """
        Create or update the remote object for key.

        Args:
            key: Logical key (e.g. "app_data")
            payload: JSON-compatible document

        Returns:
            UploadResult; never raises
        """
        try:
            await self._ensure_credentials()
            remote_ref = await self._upload(key, payload)
        except BackendAuthError as e:
            logger.warning(f"{self.provider.value} upload of {key} needs re-authentication: {e}")
            return UploadResult(success=False, error=str(e), auth_expired=True)
        except BackendError as e:
            logger.error(f"{self.provider.value} upload of {key} failed: {e}")
            return UploadResult(success=False, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error uploading {key} to {self.provider.value}: {e}", exc_info=True)
            return UploadResult(success=False, error=f"Unexpected error uploading {key}: {e}")

        if remote_ref:
            self._refs[key] = remote_ref
        logger.debug(f"Uploaded {key} to {self.provider.value} (ref={remote_ref})")
        return UploadResult(success=True, remote_ref=remote_ref)

    async def download(self, key: str) -> DownloadResult:
        """
        Fetch the remote document for key.

        Args:
            key: Logical key

        Returns:
            DownloadResult with data=None when nothing was uploaded; never raises
        """
        try:
            await self._ensure_credentials()
            data = await self._download(key)
        except BackendAuthError as e:
            logger.warning(f"{self.provider.value} download of {key} needs re-authentication: {e}")
            return DownloadResult(success=False, error=str(e), auth_expired=True)
        except BackendError as e:
            logger.error(f"{self.provider.value} download of {key} failed: {e}")
            return DownloadResult(success=False, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error downloading {key} from {self.provider.value}: {e}", exc_info=True)
            return DownloadResult(success=False, error=f"Unexpected error downloading {key}: {e}")

        logger.debug(f"Downloaded {key} from {self.provider.value} (found={data is not None})")
        return DownloadResult(success=True, data=data)

    async def delete(self, key: str) -> bool:
        """
        Remove the remote object for key.

        Returns:
            True if something was deleted, False if absent or on failure
        """
        try:
            await self._ensure_credentials()
            deleted = await self._delete(key)
        except Exception as e:
            logger.warning(f"Could not delete {key} from {self.provider.value}: {e}")
            return False

        if deleted:
            self._refs.pop(key, None)
        return deleted

    async def close(self) -> None:
        """Release network resources"""
        return None

    # -- provider hooks -------------------------------------------------

    @abstractmethod
    async def _upload(self, key: str, payload: Dict[str, Any]) -> Optional[str]:
        """
        Write payload for key.

        Returns:
            Remote handle for in-place updates, if the provider has one

        Raises:
            BackendAuthError: Credentials rejected
            BackendError: Any other provider failure
        """
        pass

    @abstractmethod
    async def _download(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Read payload for key.

        Returns:
            Parsed document, or None if it does not exist

        Raises:
            BackendAuthError: Credentials rejected
            BackendError: Any other provider failure
        """
        pass

    @abstractmethod
    async def _delete(self, key: str) -> bool:
        """
        Delete the object for key.

        Returns:
            True if deleted, False if it did not exist
        """
        pass
