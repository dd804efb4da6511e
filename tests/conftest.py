"""Shared test fixtures and configuration for localchat tests."""
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from localchat.chat.connection import ConnectionState
from localchat.chat.manager import room
from localchat.config import AppConfig, set_config
from localchat.files.service import BlobStore


class FakeConnection:
    """Stand-in for a Connection that records what it is sent."""

    def __init__(self, connection_id: str, remote_address: str = "10.0.0.5", accept: bool = True):
        self.connection_id = connection_id
        self.remote_address = remote_address
        self.state = ConnectionState.CONNECTED
        self.accept = accept
        self.received: List[dict] = []

    def deliver(self, message: dict) -> bool:
        if not self.accept:
            return False
        self.received.append(message)
        return True

    def events(self, event_type: Optional[str] = None) -> List[dict]:
        """Received envelopes, optionally filtered by event name."""
        if event_type is None:
            return list(self.received)
        return [m for m in self.received if m["type"] == event_type]


@pytest.fixture(autouse=True)
def test_config(tmp_path):
    """Point storage and static files at a temp directory."""
    config = AppConfig()
    config.files.storage_dir = str(tmp_path / "blobs")
    config.server.static_dir = str(tmp_path / "public")
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(autouse=True)
def blob_store(test_config):
    """Use a temp-dir BlobStore with in-memory metadata for each test."""
    BlobStore.reset_instance()
    store = BlobStore.get_instance(
        storage_dir=test_config.files.storage_dir,
        db_path=":memory:",
        max_size_bytes=test_config.files.max_file_size_bytes,
    )
    yield store
    BlobStore.reset_instance()


@pytest.fixture(autouse=True)
def reset_room():
    """Start every test with an empty room."""
    room.reset()
    yield
    room.reset()


@pytest.fixture
def client():
    """Provide a TestClient running the app lifespan.

    Used as a context manager so every WebSocket shares one event loop.
    """
    from localchat.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_connection():
    """Factory for FakeConnection objects."""
    return FakeConnection
