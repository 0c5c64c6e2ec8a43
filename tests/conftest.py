import uuid

import pytest
from fastapi.testclient import TestClient

from gasmonitor.config.settings import Settings
from gasmonitor.main import create_app
from gasmonitor.storage.replica_store import InMemoryReplicaStore


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        snapshot_path=str(tmp_path / "data.json"),
        snapshot_interval_seconds=3600,
        replica_backend="memory",
    )


@pytest.fixture
def replica():
    return InMemoryReplicaStore()


@pytest.fixture
def app(settings, replica, clock):
    return create_app(settings, replica_store=replica, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def settle(app, client):
    """Wait for background mirror writes started by previous requests."""

    def _settle():
        client.portal.call(app.state.gateway.mirror.drain)

    return _settle


@pytest.fixture
def unique_id():
    return uuid.uuid4().hex[:8]


@pytest.fixture
def device_id(client, unique_id):
    response = client.post(
        "/api/devices/register",
        json={"deviceId": f"gas-{unique_id}", "type": "MQ-2", "ipAddress": "10.0.0.7"},
    )
    assert response.status_code == 201
    return f"gas-{unique_id}"
