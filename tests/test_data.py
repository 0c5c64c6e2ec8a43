"""
Reading ingestion and history endpoint tests.
"""

import json

from fastapi.testclient import TestClient

from gasmonitor.main import create_app


def test_ingest_reading(client, device_id):
    response = client.post(
        "/api/data", json={"deviceId": device_id, "gasValue": 420, "timestamp": 123456}
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Data received"}


def test_ingest_requires_device_id_and_gas_value(client, device_id):
    assert client.post("/api/data", json={"gasValue": 420}).status_code == 400
    assert client.post("/api/data", json={"deviceId": device_id}).status_code == 400
    assert client.post("/api/data", json={"deviceId": "", "gasValue": 1}).status_code == 400


def test_ingest_rejects_non_numeric_gas_value(client, device_id):
    response = client.post("/api/data", json={"deviceId": device_id, "gasValue": "high"})

    assert response.status_code == 400


def test_zero_gas_value_is_accepted(client, device_id):
    response = client.post("/api/data", json={"deviceId": device_id, "gasValue": 0})

    assert response.status_code == 200


def test_readings_use_server_timestamp(client, device_id, clock):
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 420, "timestamp": 77})

    [reading] = client.get(f"/api/data/{device_id}").json()

    assert reading["value"] == 420
    assert reading["timestamp"] == clock.now
    assert reading["deviceTimestamp"] == 77
    assert reading["deviceId"] == device_id


def test_history_in_arrival_order(client, device_id, clock):
    for value in (100, 300, 200):
        client.post("/api/data", json={"deviceId": device_id, "gasValue": value})
        clock.advance(1000)

    readings = client.get(f"/api/data/{device_id}").json()

    assert [r["value"] for r in readings] == [100, 300, 200]
    assert [r["timestamp"] for r in readings] == sorted(r["timestamp"] for r in readings)


def test_history_since_filter(client, device_id, clock):
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 1})
    clock.advance(60_000)
    cutoff = clock.now
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 2})

    readings = client.get(f"/api/data/{device_id}", params={"since": cutoff}).json()

    assert [r["value"] for r in readings] == [2]


def test_history_unknown_device_returns_404(client):
    response = client.get("/api/data/never-registered")

    assert response.status_code == 404


def test_history_registered_device_without_readings(client, device_id):
    response = client.get(f"/api/data/{device_id}")

    assert response.status_code == 200
    assert response.json() == []


def test_ingest_before_registration_is_kept(client, clock):
    """Readings from an unregistered device are stored but raise no alerts."""
    client.post("/api/data", json={"deviceId": "early", "gasValue": 5000})

    readings = client.get("/api/data/early").json()

    assert [r["value"] for r in readings] == [5000]
    assert client.get("/api/devices").json() == []


def test_history_is_bounded(settings, replica, clock):
    small = settings.model_copy(update={"max_readings_per_device": 3})
    app = create_app(small, replica_store=replica, clock=clock)

    with TestClient(app) as client:
        client.post("/api/devices/register", json={"deviceId": "dev", "type": "MQ-2"})
        for value in range(10):
            client.post("/api/data", json={"deviceId": "dev", "gasValue": value})
            clock.advance(10)

        readings = client.get("/api/data/dev").json()

    assert [r["value"] for r in readings] == [7, 8, 9]


def test_ingest_updates_last_seen(client, device_id, clock):
    clock.advance(30_000)
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 1})

    [device] = client.get("/api/devices").json()

    assert device["lastSeen"] == clock.now


def test_alert_above_threshold_is_mirrored_once(client, device_id, replica, settle):
    """A reading of 900 against threshold 800 yields exactly one mirrored alert."""
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 900})
    settle()

    alert_writes = [w for w in replica.writes if w[0] == "alerts"]
    assert len(alert_writes) == 1
    assert len(replica.alerts[device_id]) == 1
    assert len(replica.readings[device_id]) == 1


def test_no_alert_at_or_below_threshold(client, device_id, replica, settle):
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 800})
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 650})
    settle()

    assert device_id not in replica.alerts
    assert len(replica.readings[device_id]) == 2


def test_threshold_change_applies_to_new_readings_only(client, device_id, replica, settle):
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 700})
    client.post(f"/api/settings/{device_id}", json={"threshold": 500})
    client.post("/api/data", json={"deviceId": device_id, "gasValue": 600})
    settle()

    [alert] = [json.loads(raw) for raw in replica.alerts[device_id].values()]
    assert alert["threshold"] == 500
    assert alert["value"] == 600
