"""
GitHub Gist backend

All keys live as <key>.json files inside one private gist. The first
upload creates the gist; its id is the remote handle used to PATCH the same
gist afterwards. Personal access tokens do not expire on a timer, so there
is nothing to refresh: a 401 means the token was revoked and is reported
as an auth failure.
"""

from typing import Optional, Dict, Any
import json
import logging

import httpx

from .base import BackendAdapter
from ..errors import BackendError, BackendAuthError, BackendConnectionError, ConfigurationError
from ..models import SyncProvider

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class GitHubGistBackend(BackendAdapter):
    """
    Backend storing snapshots in a private GitHub gist.

    Config keys:
        githubToken: Personal access token with the "gist" scope (required)
        gistId: Existing gist to reuse (optional)
        description: Gist description (default "MeetingFlow App Data")
        apiUrl: API root, for GitHub Enterprise (default https://api.github.com)
    """

    provider = SyncProvider.GITHUB_GIST

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
        self.token = self.config.get("githubToken") or self.config.get("token")
        if not self.token:
            raise ConfigurationError("GitHub Gist backend requires a 'githubToken' setting")

        self.api_url = self.config.get("apiUrl", GITHUB_API_URL).rstrip("/")
        self.description = self.config.get("description", "MeetingFlow App Data")
        self.gist_id: Optional[str] = self.config.get("gistId")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def remember_ref(self, key: str, remote_ref: Optional[str]) -> None:
        # One gist holds every key
        super().remember_ref(key, remote_ref)
        if remote_ref and not self.gist_id:
            self.gist_id = remote_ref

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers={
                    "Authorization": f"token {self.token}",
                    "Accept": "application/vnd.github+json",
                },
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._get_client().request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise BackendConnectionError(f"GitHub API timed out: {e}") from e
        except httpx.HTTPError as e:
            raise BackendConnectionError(f"GitHub API unreachable: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        try:
            message = response.json().get("message", response.reason_phrase)
        except (ValueError, AttributeError):
            message = response.reason_phrase

        if response.status_code == 401:
            raise BackendAuthError(f"GitHub token rejected while trying to {action}: {message}")
        raise BackendError(f"GitHub API error ({response.status_code}) while trying to {action}: {message}")

    @staticmethod
    def _filename(key: str) -> str:
        return f"{key}.json"

    async def _create_gist(self, key: str, content: str) -> str:
        body = {
            "description": f"{self.description} - {key}",
            "public": False,
            "files": {self._filename(key): {"content": content}},
        }
        response = await self._request("POST", "/gists", json=body)
        self._raise_for_status(response, "create gist")
        gist_id = response.json()["id"]
        logger.info(f"Created gist {gist_id} for sync data")
        # Picked up by the orchestrator via consume_config_change()
        self.config["gistId"] = gist_id
        self.mark_config_changed()
        return gist_id

    async def _upload(self, key: str, payload: Dict[str, Any]) -> Optional[str]:
        content = json.dumps(payload, indent=2, ensure_ascii=False)

        if not self.gist_id:
            self.gist_id = await self._create_gist(key, content)
            return self.gist_id

        body = {"files": {self._filename(key): {"content": content}}}
        response = await self._request("PATCH", f"/gists/{self.gist_id}", json=body)

        if response.status_code == 404:
            # Gist was deleted out from under us; start a new one
            logger.warning(f"Gist {self.gist_id} no longer exists, creating a new one")
            self.gist_id = await self._create_gist(key, content)
            return self.gist_id

        self._raise_for_status(response, f"update gist {self.gist_id}")
        return self.gist_id

    async def _download(self, key: str) -> Optional[Dict[str, Any]]:
        if not self.gist_id:
            return None

        response = await self._request("GET", f"/gists/{self.gist_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"read gist {self.gist_id}")

        file_info = response.json().get("files", {}).get(self._filename(key))
        if not file_info:
            return None

        content = file_info.get("content")
        if file_info.get("truncated") and file_info.get("raw_url"):
            # Large files are truncated in the gist payload
            raw = await self._request("GET", file_info["raw_url"])
            self._raise_for_status(raw, f"read {self._filename(key)}")
            content = raw.text

        try:
            return json.loads(content or "null")
        except json.JSONDecodeError as e:
            raise BackendError(f"Gist file {self._filename(key)} is not valid JSON: {e}") from e

    async def _delete(self, key: str) -> bool:
        if not self.gist_id:
            return False

        body = {"files": {self._filename(key): None}}
        response = await self._request("PATCH", f"/gists/{self.gist_id}", json=body)
        if response.status_code in (404, 422):
            return False
        self._raise_for_status(response, f"remove {self._filename(key)}")
        return True
