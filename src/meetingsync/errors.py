"""
Error taxonomy for the sync engine

ConfigurationError and ConnectivityError describe states the orchestrator
reports as structured results. BackendError and IntegrityError are raised
inside a sync cycle and converted into error events at the orchestrator
boundary. ConflictDetected is informational: conflicts are always merged.
"""

from typing import Optional, Dict, Any


class SyncError(Exception):
    """Base exception for sync engine errors"""

    reason = "sync_error"


class ConfigurationError(SyncError):
    """Sync is not configured, or the backend configuration is incomplete"""

    reason = "not_configured"


class ConnectivityError(SyncError):
    """The device is offline"""

    reason = "offline"


class BackendError(SyncError):
    """Transport or provider failure inside a backend adapter"""

    reason = "backend_error"
    auth_expired = False


class BackendAuthError(BackendError):
    """Credentials were rejected or could not be refreshed"""

    reason = "auth_expired"
    auth_expired = True


class BackendConnectionError(BackendError):
    """Network-level failure talking to the provider"""

    reason = "connection_error"


class IntegrityError(SyncError):
    """Downloaded snapshot does not match its stated checksum"""

    reason = "integrity_error"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Data integrity check failed - checksum mismatch "
            f"(expected {expected}, got {actual})"
        )


class ConflictDetected(SyncError):
    """Two devices changed the data independently (resolved by merge)"""

    reason = "conflict"

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        self.details = details or {}
        super().__init__("Sync conflict detected")
