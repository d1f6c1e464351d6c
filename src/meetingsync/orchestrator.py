"""
SyncOrchestrator - coordinates sync between this device and a backend

Owns the sync lifecycle for the three collections (meetings, stakeholders,
stakeholderCategories):
- Configuration and connection testing
- Upload (sync_up) with the empty-local data-loss guard
- Download (sync_down) with integrity check, conflict detection and merge
- Offline queueing and FIFO replay on reconnect
- Auto-sync timer
- Listener events for UI / CLI consumers

Usage:
    store = JsonFileStateStore(Path("~/.meetingsync/state.json").expanduser())
    orchestrator = SyncOrchestrator(store)
    await orchestrator.initialize()

    result = await orchestrator.configure("github_gist", {"githubToken": "ghp_..."})
    if result.success:
        await orchestrator.sync()

    await orchestrator.shutdown()

Configuration and connectivity problems are returned as SyncResult objects.
Backend and integrity failures inside a cycle are caught here, reported as
sync_error events with status "error", and retried on the next tick.
"""

from typing import Optional, Dict, Any, List, Callable, Union
import asyncio
import logging

from .backends import BackendAdapter, create_backend
from .conflict_detector import ConflictDetector
from .device import DeviceIdentity
from .errors import BackendError, BackendAuthError, ConfigurationError, IntegrityError, SyncError
from .listeners import Listener, ListenerRegistry, SyncEvent
from .local_store import (
    LocalStateStore,
    SYNC_CONFIG_KEY,
    LAST_SYNC_TIME_KEY,
    OPERATION_QUEUE_KEY,
)
from .merge import MergeEngine
from .models import (
    DEFAULT_SYNC_INTERVAL_MS,
    QueueEntry,
    Snapshot,
    SnapshotMetadata,
    SyncConfig,
    SyncProvider,
    SyncResult,
    SyncStatus,
    has_records,
    is_empty,
    normalize_data,
    now_iso,
)
from .scheduler import AutoSyncTimer
from .versioning import checksum, version

logger = logging.getLogger(__name__)

DATA_KEY = "app_data"
TEST_CONNECTION_KEY = "test_connection"

RESOLUTIONS = ("use_local", "use_cloud", "merge")

BackendFactory = Callable[..., BackendAdapter]


class SyncOrchestrator:
    """
    Sync state machine for one device.

    Status moves Idle -> Syncing -> {Success, Error, Conflict, Offline};
    conflicts are merged automatically and end in Success.

    A single asyncio.Lock serializes sync_up, sync_down and queue replay,
    so an auto-sync tick that fires during a manual sync waits its turn.

    Attributes:
        store: Local state store (collections + sync state)
        device: This device's identity
        status: Current SyncStatus
        config: Loaded SyncConfig, or None when not configured
        is_online: Connectivity flag maintained through set_online()
    """

    def __init__(
        self,
        store: LocalStateStore,
        backend_factory: BackendFactory = create_backend,
        device: Optional[DeviceIdentity] = None,
        detector: Optional[ConflictDetector] = None,
        merge_engine: Optional[MergeEngine] = None,
        key: str = DATA_KEY,
        online: bool = True,
        platform_string: Optional[str] = None,
    ):
        """
        Args:
            store: Local state store
            backend_factory: Callable (provider, backend_config) -> BackendAdapter
            device: Device identity (default: derived from store)
            detector: Conflict detector (default: 10 second window)
            merge_engine: Merge engine (default: MergeEngine())
            key: Remote key the snapshot is stored under
            online: Initial connectivity
            platform_string: Platform override for the device name
        """
        self.store = store
        self.backend_factory = backend_factory
        self.device = device or DeviceIdentity(store, platform_string=platform_string)
        self.detector = detector or ConflictDetector()
        self.merge_engine = merge_engine or MergeEngine()
        self.key = key
        self.is_online = online

        self.status = SyncStatus.IDLE
        self.config: Optional[SyncConfig] = None
        self.last_sync_time: Optional[str] = None
        self.queue: List[QueueEntry] = []

        self._backend: Optional[BackendAdapter] = None
        self._listeners = ListenerRegistry()
        self._lock = asyncio.Lock()
        self._timer: Optional[AutoSyncTimer] = None
        self._retired_timers: List[AutoSyncTimer] = []
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Load device identity, config, last sync time and the offline queue.

        Starts auto-sync when the stored config is enabled with autoSync.
        Safe to call more than once.
        """
        if self._initialized:
            return
        self._initialized = True

        await self.device.ensure_record()

        stored = await self.store.get(SYNC_CONFIG_KEY)
        if stored:
            try:
                self.config = SyncConfig.from_dict(stored)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Ignoring unreadable sync config: {e}")
                self.config = None

        self.last_sync_time = await self.store.get(LAST_SYNC_TIME_KEY)
        self.queue = [QueueEntry.from_dict(entry) for entry in await self.store.get(OPERATION_QUEUE_KEY, []) or []]
        if self.queue:
            logger.info(f"Loaded {len(self.queue)} queued sync operations")

        if self.config:
            try:
                self._backend = self._build_backend(self.config)
            except Exception as e:
                logger.error(f"Could not create {self.config.provider.value} backend: {e}")
                self._backend = None

            if self.config.enabled and self.config.auto_sync and self._backend:
                self.start_auto_sync()

        logger.info(
            f"Sync initialized (provider={self.config.provider.value if self.config else None}, "
            f"enabled={self.is_enabled})"
        )

    async def shutdown(self) -> None:
        """Stop auto-sync, wait for any in-flight tick, release the backend"""
        await self._stop_timers()
        if self._backend is not None:
            await self._backend.close()
        logger.info("Sync orchestrator shut down")

    @property
    def is_enabled(self) -> bool:
        return bool(self.config and self.config.enabled and self._backend is not None)

    @property
    def backend(self) -> Optional[BackendAdapter]:
        return self._backend

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked as listener(event_name, payload)"""
        self._listeners.add(listener)

    def remove_listener(self, listener: Listener) -> bool:
        return self._listeners.remove(listener)

    def _emit(self, event_name: str, payload: Any = None) -> None:
        self._listeners.notify(event_name, payload)

    def _set_status(self, status: SyncStatus) -> None:
        self.status = status
        self._emit(SyncEvent.STATUS_CHANGE, status.value)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _build_backend(self, config: SyncConfig) -> BackendAdapter:
        backend = self.backend_factory(config.provider, config.backend_config)
        backend.remember_ref(self.key, config.remote_key_ref)
        return backend

    async def _save_config(self) -> None:
        if self.config is None:
            await self.store.remove(SYNC_CONFIG_KEY)
        else:
            await self.store.set(SYNC_CONFIG_KEY, self.config.to_dict())

    async def _persist_backend_changes(self) -> None:
        """Write refreshed credentials back into the stored config"""
        if self._backend is None or self.config is None:
            return
        changed = self._backend.consume_config_change()
        if changed is not None:
            self.config.backend_config = changed
            await self._save_config()
            logger.debug(f"Persisted refreshed {self.config.provider.value} credentials")

    async def configure(
        self,
        provider: Union[str, SyncProvider],
        backend_config: Optional[Dict[str, Any]] = None,
        auto_sync: bool = True,
        interval_ms: int = DEFAULT_SYNC_INTERVAL_MS,
    ) -> SyncResult:
        """
        Store a new provider configuration and verify it.

        The config is persisted disabled, then a connection test runs;
        sync is enabled (and auto-sync started) only if the test passes.

        Args:
            provider: Provider name or SyncProvider
            backend_config: Provider settings (tokens, folder, bucket, ...)
            auto_sync: Start the interval timer after a successful test
            interval_ms: Auto-sync interval

        Returns:
            SyncResult; success=False with reason "invalid_provider" or the
            connection error when the configuration is not usable
        """
        await self.initialize()

        try:
            provider = SyncProvider.parse(provider)
        except ValueError as e:
            logger.error(str(e))
            return SyncResult(success=False, error=str(e), reason="invalid_provider")

        await self._stop_timers()
        if self._backend is not None:
            await self._backend.close()
            self._backend = None

        self.config = SyncConfig(
            provider=provider,
            backend_config=dict(backend_config or {}),
            enabled=False,
            auto_sync=auto_sync,
            interval_ms=interval_ms,
        )
        await self._save_config()
        logger.info(f"Sync provider configured: {provider.value}")
        self._emit(SyncEvent.CONFIG_UPDATED, self.config.to_dict())

        try:
            self._backend = self._build_backend(self.config)
        except (ConfigurationError, ValueError, ImportError) as e:
            logger.error(f"Invalid {provider.value} configuration: {e}")
            self._emit(SyncEvent.CONNECTION_ERROR, str(e))
            return SyncResult(success=False, error=str(e), reason=ConfigurationError.reason)

        result = await self.test_connection()
        if not result.success:
            return result

        self.config.enabled = True
        await self._save_config()

        if self.config.auto_sync:
            self.start_auto_sync()

        return SyncResult(success=True)

    async def test_connection(self) -> SyncResult:
        """
        Upload a small sentinel document to prove the backend works.

        The sentinel is removed afterwards; failing to remove it does not
        fail the test.
        """
        await self.initialize()

        if self.config is None or self._backend is None:
            return SyncResult(success=False, error="Sync provider not configured", reason=ConfigurationError.reason)

        logger.info(f"Testing sync connection for provider: {self.config.provider.value}")
        sentinel = {
            "test": True,
            "timestamp": now_iso(),
            "deviceId": await self.device.ensure_id(),
        }

        result = await self._backend.upload(TEST_CONNECTION_KEY, sentinel)
        await self._persist_backend_changes()

        if not result.success:
            error = result.error or "Connection test failed"
            logger.error(f"Sync connection test failed: {error}")
            self._emit(SyncEvent.CONNECTION_ERROR, error)
            return SyncResult(
                success=False,
                error=error,
                reason=BackendAuthError.reason if result.auth_expired else BackendError.reason,
                auth_expired=result.auth_expired,
            )

        if not await self._backend.delete(TEST_CONNECTION_KEY):
            logger.warning("Could not clean up connection test file")

        logger.info("Sync connection test successful")
        self._emit(SyncEvent.CONNECTION_SUCCESS)
        return SyncResult(success=True)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def _build_snapshot(self, data: Dict[str, Any]) -> Snapshot:
        data = normalize_data(data)
        metadata = SnapshotMetadata(
            device_id=await self.device.ensure_id(),
            device_name=self.device.name,
            timestamp=now_iso(),
            checksum=checksum(data),
            version=version(data),
        )
        return Snapshot(data=data, metadata=metadata)

    @staticmethod
    def _parse_remote(payload: Any) -> Snapshot:
        try:
            return Snapshot.from_dict(payload)
        except (ValueError, TypeError) as e:
            raise BackendError(f"Remote snapshot is malformed: {e}") from e

    @staticmethod
    def _verify_integrity(remote: Snapshot) -> None:
        expected = remote.metadata.checksum
        if not expected:
            logger.debug("Remote snapshot has no checksum, skipping integrity check")
            return
        actual = checksum(remote.data)
        if actual != expected:
            raise IntegrityError(expected, actual)

    def _failure(self, error: Exception) -> SyncResult:
        """Report a failed cycle: sync_error + status error"""
        reason = getattr(error, "reason", SyncError.reason)
        auth_expired = bool(getattr(error, "auth_expired", False))
        message = str(error) or error.__class__.__name__

        self._emit(SyncEvent.SYNC_ERROR, {
            "error": message,
            "reason": reason,
            "authExpired": auth_expired,
        })
        self._set_status(SyncStatus.ERROR)
        return SyncResult(success=False, error=message, reason=reason, auth_expired=auth_expired)

    @staticmethod
    def _download_error(result) -> BackendError:
        if result.auth_expired:
            return BackendAuthError(result.error or "Backend credentials expired")
        return BackendError(result.error or "Download failed")

    def _not_configured(self) -> SyncResult:
        return SyncResult(success=False, error="Sync not configured", reason=ConfigurationError.reason)

    async def _record_sync_time(self) -> str:
        self.last_sync_time = now_iso()
        await self.store.set(LAST_SYNC_TIME_KEY, self.last_sync_time)
        return self.last_sync_time

    # ------------------------------------------------------------------
    # Offline queue
    # ------------------------------------------------------------------

    async def _save_queue(self) -> None:
        await self.store.set(OPERATION_QUEUE_KEY, [entry.to_dict() for entry in self.queue])

    async def _enqueue(self, data: Dict[str, Any]) -> SyncResult:
        self.queue.append(QueueEntry(data=normalize_data(data)))
        await self._save_queue()
        logger.info(f"Offline - queued sync operation ({len(self.queue)} pending)")

        self._set_status(SyncStatus.OFFLINE)
        self._emit(SyncEvent.OPERATION_QUEUED, {"action": "upload", "queueSize": len(self.queue)})
        return SyncResult(success=False, queued=True, offline=True, reason="offline")

    async def _drain_queue(self) -> int:
        """
        Replay queued uploads FIFO.

        Stops at the first failure, putting that entry back at the head.

        Returns:
            Number of entries replayed successfully
        """
        replayed = 0
        while self.queue and self.is_online:
            entry = self.queue.pop(0)
            await self._save_queue()

            result = await self._sync_up(entry.data)
            if not result.success:
                if result.queued:
                    # Went offline mid-replay; _sync_up appended a copy at the tail
                    self.queue.pop()
                self.queue.insert(0, entry)
                await self._save_queue()
                logger.warning(f"Queued sync failed, {len(self.queue)} operations left: {result.error}")
                break
            replayed += 1

        if replayed:
            logger.info(f"Replayed {replayed} queued sync operations")
        return replayed

    async def set_online(self, online: bool) -> None:
        """
        Record a connectivity change.

        Going online replays the offline queue; going offline makes later
        uploads queue instead of failing.
        """
        await self.initialize()
        was_online, self.is_online = self.is_online, online

        if not online:
            if was_online:
                logger.info("Device went offline")
                self._set_status(SyncStatus.OFFLINE)
            return

        if not was_online:
            logger.info("Device back online")
            self._set_status(SyncStatus.IDLE)

        if self.queue and self.is_enabled:
            async with self._lock:
                await self._drain_queue()

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def sync_up(self, local_data: Optional[Dict[str, Any]] = None) -> SyncResult:
        """
        Upload local data as a new snapshot.

        If local data holds no meetings and no stakeholders while the
        remote holds records, nothing is uploaded and sync_down runs
        instead, so an empty device never wipes the shared copy.

        Args:
            local_data: Data payload (default: read from the local store)

        Returns:
            SyncResult
        """
        await self.initialize()
        async with self._lock:
            if local_data is None:
                local_data = await self.store.read_collections()
            return await self._sync_up(local_data)

    async def _sync_up(self, local_data: Dict[str, Any]) -> SyncResult:
        if not self.is_enabled:
            return self._not_configured()

        if not self.is_online:
            return await self._enqueue(local_data)

        self._set_status(SyncStatus.SYNCING)
        data = normalize_data(local_data)

        try:
            if is_empty(data):
                logger.warning("Attempting to upload empty data - checking remote first")
                existing = await self._backend.download(self.key)
                await self._persist_backend_changes()
                if not existing.success:
                    raise self._download_error(existing)

                if existing.data is not None:
                    remote = self._parse_remote(existing.data)
                    if has_records(remote.data):
                        logger.warning("Remote holds data - syncing down instead of uploading empty data")
                        return await self._sync_down(prefetched=existing.data)

            snapshot = await self._build_snapshot(data)
            logger.info(
                f"Uploading snapshot to {self.config.provider.value} "
                f"({len(data['meetings'])} meetings, {len(data['stakeholders'])} stakeholders, "
                f"{len(data['stakeholderCategories'])} categories)"
            )
            result = await self._backend.upload(self.key, snapshot.to_dict())
            await self._persist_backend_changes()

            if not result.success:
                if result.auth_expired:
                    raise BackendAuthError(result.error or "Backend credentials expired")
                raise BackendError(result.error or "Upload failed")

            if result.remote_ref and result.remote_ref != self.config.remote_key_ref:
                self.config.remote_key_ref = result.remote_ref
                await self._save_config()

            timestamp = await self._record_sync_time()
        except SyncError as e:
            logger.error(f"Sync to remote failed: {e}")
            return self._failure(e)
        except Exception as e:
            logger.error(f"Unexpected error during sync to remote: {e}", exc_info=True)
            return self._failure(e)

        logger.info("Data synced successfully to remote")
        self._emit(SyncEvent.SYNC_SUCCESS, {"timestamp": timestamp})
        self._set_status(SyncStatus.SUCCESS)
        return SyncResult(success=True, timestamp=timestamp)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def sync_down(self) -> SyncResult:
        """
        Download the remote snapshot and merge it into local state.

        A snapshot whose checksum does not match its content is rejected
        and local state is left untouched.
        """
        await self.initialize()
        async with self._lock:
            return await self._sync_down()

    async def _sync_down(self, prefetched: Optional[Dict[str, Any]] = None) -> SyncResult:
        if not self.is_enabled:
            return self._not_configured()

        if not self.is_online:
            logger.info("Offline - cannot sync from remote")
            self._set_status(SyncStatus.OFFLINE)
            return SyncResult(success=False, offline=True, reason="offline")

        self._set_status(SyncStatus.SYNCING)

        try:
            payload = prefetched
            if payload is None:
                result = await self._backend.download(self.key)
                await self._persist_backend_changes()
                if not result.success:
                    raise self._download_error(result)
                payload = result.data

            if payload is None:
                logger.info("No remote data found - first sync will upload local data")
                self._set_status(SyncStatus.IDLE)
                return SyncResult(success=True, no_cloud_data=True)

            remote = self._parse_remote(payload)
            self._verify_integrity(remote)

            local = await self._build_snapshot(await self.store.read_collections())
            conflict = self.detector.detect(local, remote)
            if conflict:
                logger.warning(f"Sync conflict detected, merging: {conflict.to_dict()}")
                self._set_status(SyncStatus.CONFLICT)

            merged, stats = self.merge_engine.merge_with_stats(local.data, remote.data)
            await self.store.write_collections(merged)
            timestamp = await self._record_sync_time()
        except SyncError as e:
            logger.error(f"Sync from remote failed: {e}")
            return self._failure(e)
        except Exception as e:
            logger.error(f"Unexpected error during sync from remote: {e}", exc_info=True)
            return self._failure(e)

        logger.info(
            f"Data synced successfully from remote ({len(merged['meetings'])} meetings, "
            f"{len(merged['stakeholders'])} stakeholders; {stats.to_dict()})"
        )
        self._emit(SyncEvent.SYNC_SUCCESS, {"timestamp": timestamp, "data": merged, "source": "cloud"})
        self._set_status(SyncStatus.SUCCESS)

        conflict_details = conflict.to_dict() if conflict else None
        if conflict:
            self._emit(SyncEvent.CONFLICT_RESOLVED, {
                "resolution": "merge",
                "conflict": conflict_details,
                "data": merged,
            })

        return SyncResult(success=True, data=merged, timestamp=timestamp, conflict=conflict_details)

    # ------------------------------------------------------------------
    # Combined operations
    # ------------------------------------------------------------------

    async def sync(self) -> SyncResult:
        """Full cycle: merge the remote into local state, then upload the result"""
        await self.initialize()
        async with self._lock:
            down = await self._sync_down()
            if not down.success and not down.offline:
                return down
            return await self._sync_up(await self.store.read_collections())

    async def resolve_conflict(
        self,
        resolution: str,
        local_data: Optional[Dict[str, Any]] = None,
        remote_data: Optional[Dict[str, Any]] = None,
    ) -> SyncResult:
        """
        Manually settle diverging data and upload the outcome.

        Args:
            resolution: "use_local", "use_cloud" or "merge"
            local_data: Local payload (default: read from the local store)
            remote_data: Remote collections (default: downloaded)

        Returns:
            SyncResult with the resolved data

        Raises:
            ValueError: If resolution is not one of RESOLUTIONS
        """
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Invalid conflict resolution option: {resolution}")

        await self.initialize()
        async with self._lock:
            if not self.is_enabled:
                return self._not_configured()

            if local_data is None:
                local_data = await self.store.read_collections()

            if remote_data is None and resolution != "use_local":
                if not self.is_online:
                    return SyncResult(success=False, offline=True, reason="offline")
                result = await self._backend.download(self.key)
                await self._persist_backend_changes()
                if not result.success:
                    return self._failure(self._download_error(result))
                if result.data is None:
                    remote_data = None
                else:
                    try:
                        remote = self._parse_remote(result.data)
                        self._verify_integrity(remote)
                    except SyncError as e:
                        return self._failure(e)
                    remote_data = remote.data

            if resolution == "use_local":
                resolved = normalize_data(local_data)
            elif resolution == "use_cloud":
                if remote_data is None:
                    return SyncResult(success=False, no_cloud_data=True, error="No remote data to use")
                resolved = normalize_data(remote_data)
            else:
                resolved = self.merge_engine.merge(local_data, remote_data)

            await self.store.write_collections(resolved)
            logger.info(f"Conflict resolved: {resolution}")

            upload = await self._sync_up(resolved)
            if not upload.success and not upload.queued:
                return upload

        self._emit(SyncEvent.CONFLICT_RESOLVED, {"resolution": resolution, "data": resolved})
        return SyncResult(success=True, data=resolved, timestamp=upload.timestamp, queued=upload.queued)

    # ------------------------------------------------------------------
    # Auto-sync
    # ------------------------------------------------------------------

    async def _auto_sync_tick(self) -> None:
        result = await self.sync_up()
        if not result.success and not result.queued:
            logger.warning(f"Auto-sync failed (will retry next interval): {result.error}")

    def start_auto_sync(self) -> bool:
        """
        Start (or restart) the interval timer.

        Returns:
            False if sync is not configured and enabled
        """
        if not self.is_enabled:
            logger.warning("Cannot start auto-sync: sync not configured")
            return False

        self.stop_auto_sync()
        self._timer = AutoSyncTimer(self._auto_sync_tick, interval_ms=self.config.interval_ms)
        self._timer.start()
        return True

    def stop_auto_sync(self) -> None:
        """Cancel future ticks; a tick already running completes"""
        if self._timer is not None:
            self._timer.stop()
            self._retired_timers = [t for t in self._retired_timers if not t.is_closed]
            self._retired_timers.append(self._timer)
            self._timer = None

    @property
    def auto_sync_running(self) -> bool:
        return self._timer is not None and self._timer.is_running

    async def _stop_timers(self) -> None:
        self.stop_auto_sync()
        timers, self._retired_timers = self._retired_timers, []
        for timer in timers:
            await timer.wait_closed()

    # ------------------------------------------------------------------
    # Status and reset
    # ------------------------------------------------------------------

    async def get_sync_status(self) -> Dict[str, Any]:
        """Snapshot of configuration and runtime state for display"""
        await self.initialize()
        return {
            "configured": self.config is not None,
            "provider": self.config.provider.value if self.config else None,
            "enabled": bool(self.config and self.config.enabled),
            "autoSync": self.auto_sync_running,
            "lastSync": self.last_sync_time,
            "isOnline": self.is_online,
            "deviceId": await self.device.ensure_id(),
            "deviceName": self.device.name,
            "status": self.status.value,
            "queuedOperations": len(self.queue),
        }

    async def clear_sync_data(self) -> None:
        """
        Factory reset of sync state.

        Local collections are kept; configuration, last sync time, the
        offline queue and the device identity are removed.
        """
        await self._stop_timers()
        if self._backend is not None:
            await self._backend.close()
            self._backend = None

        self.queue = []
        self.config = None
        self.last_sync_time = None

        await self.store.remove(SYNC_CONFIG_KEY)
        await self.store.remove(LAST_SYNC_TIME_KEY)
        await self.store.remove(OPERATION_QUEUE_KEY)
        await self.device.forget()

        self.status = SyncStatus.IDLE
        self._initialized = False
        logger.info("All sync data cleared")
