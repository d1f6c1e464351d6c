"""
Google Drive backend

Each key is stored as meetingflow_<key>.json, optionally inside a folder.
Access tokens are short-lived: before every call the token is refreshed
through the OAuth token endpoint if it has expired or expires within five
minutes. Concurrent callers share a single refresh. If the refresh fails,
the call fails with BackendAuthError, which the adapter contract reports as
auth_expired.

Drive allows several files with the same name. When duplicates are found,
the largest (then most recently modified) one is kept and the others are
removed, so every device converges on a single file.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
import asyncio
import json
import logging
import uuid

import httpx

from .base import BackendAdapter
from ..errors import BackendError, BackendAuthError, BackendConnectionError, ConfigurationError
from ..models import SyncProvider, parse_timestamp

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh tokens this long before they expire
REFRESH_MARGIN_MS = 5 * 60 * 1000


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class GoogleDriveBackend(BackendAdapter):
    """
    Backend storing snapshots as JSON files on Google Drive.

    Config keys:
        accessToken: OAuth access token (required)
        refreshToken: OAuth refresh token (needed for transparent refresh)
        expiresAt: Access token expiry, epoch milliseconds
        clientId / clientSecret: OAuth client used for refresh
        folderId: Parent folder for the files (default: Drive root)
        tokenUrl: Token endpoint (default: Google's)
    """

    provider = SyncProvider.GOOGLE_DRIVE

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Args:
            config: Provider configuration (see class docstring)
            client: Pre-built httpx client (tests inject a MockTransport)
            timeout: Request timeout in seconds
        """
        super().__init__(config)
        if not self.config.get("accessToken") and not self.config.get("refreshToken"):
            raise ConfigurationError(
                "Google Drive backend requires an 'accessToken' (and ideally a 'refreshToken')"
            )
        self.folder_id: Optional[str] = self.config.get("folderId")
        self.token_url = self.config.get("tokenUrl", GOOGLE_TOKEN_URL)
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._refresh_lock = asyncio.Lock()

    @staticmethod
    def filename(key: str) -> str:
        return f"meetingflow_{key}.json"

    # -- credentials ----------------------------------------------------

    def _token_expiring(self) -> bool:
        if not self.config.get("accessToken"):
            return True
        expires_at = self.config.get("expiresAt")
        if not expires_at:
            return False
        return _now_ms() >= int(expires_at) - REFRESH_MARGIN_MS

    async def _ensure_credentials(self) -> None:
        if not self._token_expiring():
            return

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            if not self._token_expiring():
                return
            if not await self._refresh_token():
                raise BackendAuthError(
                    "Google Drive token expired - please re-authenticate"
                )

    async def _refresh_token(self) -> bool:
        """
        Exchange the refresh token for a new access token.

        Returns:
            True on success (self.config updated), False otherwise
        """
        refresh_token = self.config.get("refreshToken")
        if not refresh_token:
            logger.warning("Google Drive token expired and no refresh token is available")
            return False

        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        if self.config.get("clientId"):
            form["client_id"] = self.config["clientId"]
        if self.config.get("clientSecret"):
            form["client_secret"] = self.config["clientSecret"]

        try:
            response = await self._get_client().post(self.token_url, data=form)
        except httpx.HTTPError as e:
            logger.error(f"Failed to refresh Google Drive token: {e}")
            return False

        if not response.is_success:
            logger.error(f"Google Drive token refresh rejected ({response.status_code})")
            return False

        try:
            token = response.json()
            self.config["accessToken"] = token["access_token"]
        except (ValueError, KeyError) as e:
            logger.error(f"Malformed token refresh response: {e}")
            return False

        self.config["expiresAt"] = _now_ms() + int(token.get("expires_in", 3600)) * 1000
        if token.get("refresh_token"):
            self.config["refreshToken"] = token["refresh_token"]
        self.mark_config_changed()
        logger.info("Google Drive access token refreshed")
        return True

    # -- http -----------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, url: str, headers: Dict[str, str], **kwargs: Any) -> httpx.Response:
        headers = {**headers, "Authorization": f"Bearer {self.config.get('accessToken')}"}
        try:
            return await self._get_client().request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise BackendConnectionError(f"Google Drive timed out: {e}") from e
        except httpx.HTTPError as e:
            raise BackendConnectionError(f"Google Drive unreachable: {e}") from e

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", {}) or {})
        response = await self._send(method, url, headers, **kwargs)

        if response.status_code == 401:
            # Token revoked or expired early; refresh once and retry
            rejected = self.config.get("accessToken")
            async with self._refresh_lock:
                refreshed = self.config.get("accessToken") != rejected or await self._refresh_token()
            if not refreshed:
                raise BackendAuthError("Google Drive rejected the access token - please re-authenticate")
            response = await self._send(method, url, headers, **kwargs)
            if response.status_code == 401:
                raise BackendAuthError("Google Drive rejected the refreshed access token")
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        try:
            message = response.json().get("error", {}).get("message", response.reason_phrase)
        except (ValueError, AttributeError):
            message = response.reason_phrase
        raise BackendError(f"Google Drive failed to {action} ({response.status_code}): {message}")

    # -- file lookup ----------------------------------------------------

    async def _search(self, name: str) -> List[Dict[str, Any]]:
        query = f"name = '{name}' and '{self.folder_id or 'root'}' in parents and trashed = false"
        response = await self._request(
            "GET",
            f"{DRIVE_API_URL}/files",
            params={"q": query, "fields": "files(id,name,size,modifiedTime)", "spaces": "drive"},
        )
        self._raise_for_status(response, f"search for {name}")
        return response.json().get("files", [])

    async def _resolve_file_id(self, key: str) -> Optional[str]:
        """Find the single file for key, removing duplicates if there are several"""
        cached = self.ref_for(key)
        if cached:
            return cached

        name = self.filename(key)
        files = await self._search(name)
        if not files:
            return None

        def rank(f: Dict[str, Any]):
            modified = parse_timestamp(f.get("modifiedTime"))
            return (int(f.get("size") or 0), modified.timestamp() if modified else 0.0)

        files.sort(key=rank, reverse=True)
        best, duplicates = files[0], files[1:]

        if duplicates:
            logger.warning(f"Found {len(files)} copies of {name}, keeping {best['id']}")
            for duplicate in duplicates:
                response = await self._request("DELETE", f"{DRIVE_API_URL}/files/{duplicate['id']}")
                if not response.is_success and response.status_code != 404:
                    logger.warning(f"Could not delete duplicate {duplicate['id']} ({response.status_code})")

        self.remember_ref(key, best["id"])
        return best["id"]

    # -- hooks ----------------------------------------------------------

    def _multipart_body(self, metadata: Dict[str, Any], content: str) -> tuple:
        boundary = f"-------MeetingSyncBoundary{uuid.uuid4().hex}"
        body = (
            f"\r\n--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}"
            f"\r\n--{boundary}\r\n"
            "Content-Type: application/json\r\n\r\n"
            f"{content}"
            f"\r\n--{boundary}--"
        ).encode("utf-8")
        return body, f"multipart/related; boundary={boundary}"

    async def _create_file(self, key: str, content: str) -> str:
        metadata = {
            "name": self.filename(key),
            "mimeType": "application/json",
            "description": f"MeetingFlow App Data - {key}",
        }
        if self.folder_id:
            metadata["parents"] = [self.folder_id]

        body, content_type = self._multipart_body(metadata, content)
        response = await self._request(
            "POST",
            f"{DRIVE_UPLOAD_URL}/files",
            params={"uploadType": "multipart"},
            content=body,
            headers={"Content-Type": content_type},
        )
        self._raise_for_status(response, f"create {self.filename(key)}")
        return response.json()["id"]

    async def _update_file(self, file_id: str, key: str, content: str) -> httpx.Response:
        metadata = {"name": self.filename(key), "mimeType": "application/json"}
        body, content_type = self._multipart_body(metadata, content)
        return await self._request(
            "PATCH",
            f"{DRIVE_UPLOAD_URL}/files/{file_id}",
            params={"uploadType": "multipart"},
            content=body,
            headers={"Content-Type": content_type},
        )

    async def _upload(self, key: str, payload: Dict[str, Any]) -> Optional[str]:
        content = json.dumps(payload, indent=2, ensure_ascii=False)
        file_id = await self._resolve_file_id(key)

        if file_id:
            response = await self._update_file(file_id, key, content)
            if response.status_code == 404:
                # Deleted remotely; another device may have created a replacement
                logger.warning(f"Drive file {file_id} no longer exists, looking it up again")
                self.forget_ref(key)
                file_id = await self._resolve_file_id(key)
                if file_id:
                    response = await self._update_file(file_id, key, content)

        if not file_id:
            return await self._create_file(key, content)

        self._raise_for_status(response, f"update {self.filename(key)}")
        return file_id

    async def _download(self, key: str) -> Optional[Dict[str, Any]]:
        file_id = await self._resolve_file_id(key)
        if not file_id:
            return None

        response = await self._request("GET", f"{DRIVE_API_URL}/files/{file_id}", params={"alt": "media"})
        if response.status_code == 404:
            self.forget_ref(key)
            file_id = await self._resolve_file_id(key)
            if not file_id:
                return None
            response = await self._request("GET", f"{DRIVE_API_URL}/files/{file_id}", params={"alt": "media"})
        self._raise_for_status(response, f"download {self.filename(key)}")

        try:
            return json.loads(response.text)
        except json.JSONDecodeError as e:
            raise BackendError(f"Drive file {self.filename(key)} is not valid JSON: {e}") from e

    async def _delete(self, key: str) -> bool:
        file_id = await self._resolve_file_id(key)
        if not file_id:
            return False

        response = await self._request("DELETE", f"{DRIVE_API_URL}/files/{file_id}")
        self.forget_ref(key)
        if response.status_code == 404:
            return False
        self._raise_for_status(response, f"delete {self.filename(key)}")
        return True
