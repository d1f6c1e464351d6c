"""Unit Tests for sync backends

Tests: adapter contract (never raises, auth_expired), MemoryBackend,
FileSystemBackend, backend factory
"""
import json
import pytest
from unittest.mock import AsyncMock


class TestBackendContract:
    """Tests for the BackendAdapter base class."""

    def _failing_backend(self, error):
        from meetingsync.backends import MemoryBackend

        backend = MemoryBackend()
        backend._upload = AsyncMock(side_effect=error)
        backend._download = AsyncMock(side_effect=error)
        backend._delete = AsyncMock(side_effect=error)
        return backend

    @pytest.mark.asyncio
    async def test_backend_error_becomes_result(self):
        """BackendError is reported in the result, not raised."""
        from meetingsync.errors import BackendError

        backend = self._failing_backend(BackendError("server said no"))

        upload = await backend.upload("app_data", {"data": {}})
        download = await backend.download("app_data")

        assert upload.success is False
        assert upload.error == "server said no"
        assert upload.auth_expired is False
        assert download.success is False
        assert download.data is None

    @pytest.mark.asyncio
    async def test_auth_error_sets_auth_expired(self):
        """BackendAuthError surfaces as auth_expired=True."""
        from meetingsync.errors import BackendAuthError

        backend = self._failing_backend(BackendAuthError("token revoked"))

        assert (await backend.upload("k", {})).auth_expired is True
        assert (await backend.download("k")).auth_expired is True

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_result(self):
        """Any other exception is also converted."""
        backend = self._failing_backend(RuntimeError("bug"))

        result = await backend.upload("k", {})
        assert result.success is False
        assert "bug" in result.error
        assert await backend.delete("k") is False

    @pytest.mark.asyncio
    async def test_credentials_checked_before_call(self):
        """_ensure_credentials failing prevents the hook from running."""
        from meetingsync.backends import MemoryBackend
        from meetingsync.errors import BackendAuthError

        backend = MemoryBackend()
        backend._ensure_credentials = AsyncMock(side_effect=BackendAuthError("expired"))
        backend._upload = AsyncMock()

        result = await backend.upload("k", {})

        assert result.auth_expired is True
        backend._upload.assert_not_called()

    def test_config_change_consumed_once(self):
        """consume_config_change returns the config once after a change."""
        from meetingsync.backends import MemoryBackend

        backend = MemoryBackend({"token": "a"})
        assert backend.consume_config_change() is None

        backend.config["token"] = "b"
        backend.mark_config_changed()

        assert backend.consume_config_change() == {"token": "b"}
        assert backend.consume_config_change() is None


class TestMemoryBackend:
    """Tests for MemoryBackend."""

    @pytest.mark.asyncio
    async def test_upload_download_delete(self):
        """Documents round-trip through the shared dict."""
        from meetingsync.backends import MemoryBackend

        backend = MemoryBackend()
        result = await backend.upload("app_data", {"data": {"meetings": []}})

        assert result.success is True
        assert result.remote_ref == "memory:app_data"
        assert (await backend.download("app_data")).data == {"data": {"meetings": []}}
        assert await backend.delete("app_data") is True
        assert await backend.delete("app_data") is False

    @pytest.mark.asyncio
    async def test_absent_key_is_not_an_error(self):
        """Downloading a missing key succeeds with data=None."""
        from meetingsync.backends import MemoryBackend

        result = await MemoryBackend().download("app_data")

        assert result.success is True
        assert result.data is None

    @pytest.mark.asyncio
    async def test_shared_store(self):
        """Two adapters over one dict see each other's uploads."""
        from meetingsync.backends import MemoryBackend

        shared = {}
        await MemoryBackend(store=shared).upload("app_data", {"v": 1})

        assert (await MemoryBackend(store=shared).download("app_data")).data == {"v": 1}

    @pytest.mark.asyncio
    async def test_stored_copy_is_isolated(self):
        """Mutating the uploaded payload afterwards does not change the remote."""
        from meetingsync.backends import MemoryBackend

        backend = MemoryBackend()
        payload = {"items": [1]}
        await backend.upload("k", payload)
        payload["items"].append(2)

        assert (await backend.download("k")).data == {"items": [1]}


class TestFileSystemBackend:
    """Tests for FileSystemBackend."""

    def test_requires_folder(self):
        """A folder setting is mandatory."""
        from meetingsync.backends import FileSystemBackend
        from meetingsync.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            FileSystemBackend({})

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        """Upload writes <prefix><key>.json and download reads it back."""
        from meetingsync.backends import FileSystemBackend

        backend = FileSystemBackend({"folder": str(tmp_path / "shared"), "prefix": "mf_"})
        result = await backend.upload("app_data", {"data": {"meetings": [{"id": "m1"}]}})

        path = tmp_path / "shared" / "mf_app_data.json"
        assert result.success is True
        assert result.remote_ref == str(path)
        assert json.loads(path.read_text())["data"]["meetings"][0]["id"] == "m1"
        assert (await backend.download("app_data")).data["data"]["meetings"][0]["id"] == "m1"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        """A missing file downloads as None."""
        from meetingsync.backends import FileSystemBackend

        result = await FileSystemBackend({"folder": str(tmp_path)}).download("app_data")

        assert result.success is True
        assert result.data is None

    @pytest.mark.asyncio
    async def test_invalid_json_is_error(self, tmp_path):
        """A corrupt remote file is reported as a failure."""
        from meetingsync.backends import FileSystemBackend

        (tmp_path / "app_data.json").write_text("{broken")
        result = await FileSystemBackend({"folder": str(tmp_path)}).download("app_data")

        assert result.success is False
        assert "not valid JSON" in result.error

    @pytest.mark.asyncio
    async def test_failed_upload_removes_temp_file(self, tmp_path):
        """A failed rename is reported and leaves nothing in the folder."""
        from unittest.mock import AsyncMock, patch
        from meetingsync.backends import FileSystemBackend

        backend = FileSystemBackend({"folder": str(tmp_path)})
        with patch("aiofiles.os.replace", AsyncMock(side_effect=OSError("read-only"))):
            result = await backend.upload("app_data", {"data": {"meetings": []}})

        assert result.success is False
        assert "Failed to write" in result.error
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        """Delete removes the file and reports whether it existed."""
        from meetingsync.backends import FileSystemBackend

        backend = FileSystemBackend({"folder": str(tmp_path)})
        await backend.upload("test_connection", {"test": True})

        assert await backend.delete("test_connection") is True
        assert await backend.delete("test_connection") is False
        assert list(tmp_path.iterdir()) == []


class TestCreateBackend:
    """Tests for the backend factory."""

    def test_creates_by_name(self, tmp_path):
        """Provider strings map to adapter classes."""
        from meetingsync.backends import create_backend, FileSystemBackend, MemoryBackend

        assert isinstance(create_backend("memory"), MemoryBackend)
        assert isinstance(create_backend("filesystem", {"folder": str(tmp_path)}), FileSystemBackend)

    def test_accepts_enum(self):
        """SyncProvider members are accepted."""
        from meetingsync.backends import create_backend, GitHubGistBackend
        from meetingsync.models import SyncProvider

        backend = create_backend(SyncProvider.GITHUB_GIST, {"githubToken": "ghp_test"})
        assert isinstance(backend, GitHubGistBackend)

    def test_unknown_provider(self):
        """Unknown providers raise ValueError listing the supported ones."""
        from meetingsync.backends import create_backend

        with pytest.raises(ValueError, match="Invalid sync provider"):
            create_backend("dropbox")

    def test_kwargs_passed_through(self):
        """Extra keyword arguments reach the adapter."""
        from meetingsync.backends import create_backend

        shared = {}
        backend = create_backend("memory", {}, store=shared)
        assert backend.store is shared
