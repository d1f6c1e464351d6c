"""Pytest fixtures for meetingsync tests"""
import pytest


@pytest.fixture
def store():
    """Empty in-memory state store."""
    from meetingsync.local_store import InMemoryStateStore

    return InMemoryStateStore()


@pytest.fixture
def shared_remote():
    """Dict standing in for one remote store shared by several devices."""
    return {}


@pytest.fixture
def memory_factory(shared_remote):
    """Backend factory producing MemoryBackends over the shared remote."""
    from meetingsync.backends import MemoryBackend

    def factory(provider, backend_config):
        return MemoryBackend(backend_config, store=shared_remote)

    return factory


@pytest.fixture
def make_orchestrator(memory_factory):
    """Build an orchestrator over its own store and the shared remote.

    Usage:
        device_a = make_orchestrator(platform_string="Windows-10")
    """
    from meetingsync.local_store import InMemoryStateStore
    from meetingsync.orchestrator import SyncOrchestrator

    def _make(store=None, platform_string="Linux-6.1.0-x86_64", **kwargs):
        kwargs.setdefault("backend_factory", memory_factory)
        return SyncOrchestrator(
            store if store is not None else InMemoryStateStore(),
            platform_string=platform_string,
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_data():
    """Small data payload with one record per collection."""
    return {
        "meetings": [
            {"id": "m1", "title": "Kickoff", "lastSaved": "2025-01-01T10:00:00.000Z"},
        ],
        "stakeholders": [
            {"id": "s1", "name": "Alex", "updatedAt": "2025-01-01T09:00:00.000Z"},
        ],
        "stakeholderCategories": [
            {"key": "exec", "name": "Executive"},
        ],
    }


class RecordingListener:
    """Listener that records (event_name, payload) pairs."""

    def __init__(self):
        self.events = []

    def __call__(self, event_name, payload):
        self.events.append((event_name, payload))

    def names(self):
        return [name for name, _ in self.events]

    def payloads(self, event_name):
        return [payload for name, payload in self.events if name == event_name]


@pytest.fixture
def recorder():
    """Listener capturing every emitted sync event."""
    return RecordingListener()
