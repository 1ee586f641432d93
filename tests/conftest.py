# =============================================================================
# tests/conftest.py
# Shared fixtures: fake remote store, temporary local store, sync facade
# =============================================================================

import os

# Settings refuse the default JWT secret outside debug mode
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest

from attendance_hub.sync import ConnectionMonitor, LocalStore, SyncFacade
from support import FakeRemoteStore


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def local_store(tmp_path):
    store = LocalStore(str(tmp_path / "local.db"))
    yield store
    store.close()


@pytest.fixture
def broken_local_store(tmp_path):
    """Store whose database path is a directory, so the engine never opens."""
    return LocalStore(str(tmp_path))


@pytest.fixture
def monitor(remote, local_store):
    return ConnectionMonitor(remote, local_store, online=True)


@pytest.fixture
def sync(remote, local_store, monitor):
    return SyncFacade(remote, local_store, monitor)


@pytest.fixture
def student_data():
    return {
        "name": "Asha Rao",
        "rollNumber": "7",
        "year": "FirstYear",
        "division": "A",
        "email": "asha@example.com",
        "phone": "5550101",
    }
