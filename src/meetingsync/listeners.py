"""
Listener fan-out for sync events.

Listeners are plain callables invoked as listener(event_name, payload).
A listener that raises is logged and skipped; it never aborts the sync
operation that emitted the event or blocks the remaining listeners.

Usage:
    registry = ListenerRegistry()
    registry.add(lambda event, payload: print(event, payload))
    registry.notify(SyncEvent.STATUS_CHANGE, "syncing")
"""

from typing import Callable, List, Any
from threading import Lock
import logging

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


class SyncEvent:
    """Event names emitted by the orchestrator"""
    CONFIG_UPDATED = "config_updated"
    CONNECTION_SUCCESS = "connection_success"
    CONNECTION_ERROR = "connection_error"
    SYNC_SUCCESS = "sync_success"
    SYNC_ERROR = "sync_error"
    STATUS_CHANGE = "status_change"
    CONFLICT_RESOLVED = "conflict_resolved"
    OPERATION_QUEUED = "operation_queued"

    ALL = (
        CONFIG_UPDATED,
        CONNECTION_SUCCESS,
        CONNECTION_ERROR,
        SYNC_SUCCESS,
        SYNC_ERROR,
        STATUS_CHANGE,
        CONFLICT_RESOLVED,
        OPERATION_QUEUED,
    )


class ListenerRegistry:
    """
    Ordered set of sync listeners.

    Notification order is registration order. Registering the same
    callable twice is a no-op.
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = Lock()

    def add(self, listener: Listener) -> None:
        """
        Register a listener.

        Args:
            listener: Callable taking (event_name, payload)
        """
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)
                logger.debug(f"Added sync listener: {getattr(listener, '__name__', 'lambda')}")

    def remove(self, listener: Listener) -> bool:
        """
        Unregister a listener.

        Returns:
            True if the listener was registered, False otherwise
        """
        with self._lock:
            try:
                self._listeners.remove(listener)
                return True
            except ValueError:
                return False

    def notify(self, event_name: str, payload: Any = None) -> None:
        """
        Invoke every listener with (event_name, payload).

        Args:
            event_name: One of SyncEvent.ALL
            payload: Event-specific data
        """
        # Copy so listeners can add/remove themselves while being notified
        with self._lock:
            listeners = self._listeners.copy()

        for listener in listeners:
            try:
                listener(event_name, payload)
            except Exception as e:
                logger.error(f"Sync listener error for {event_name}: {e}", exc_info=True)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
