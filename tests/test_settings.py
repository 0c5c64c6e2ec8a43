"""
Per-device alert settings tests.
"""

import json

import pytest

from gasmonitor.core.errors import NotFoundError
from gasmonitor.core.fanout import FanoutChannel
from gasmonitor.models.device_settings import SettingsUpdate
from gasmonitor.models.events import EventKind
from gasmonitor.storage.settings_store import SettingsStore


def test_upsert_creates_from_defaults():
    store = SettingsStore(default_threshold=800, default_actuator_enabled=True)

    settings = store.upsert("dev", SettingsUpdate(threshold=500))

    assert settings.threshold == 500
    assert settings.actuator_enabled is True


def test_partial_update_changes_only_supplied_fields():
    store = SettingsStore()
    store.upsert("dev", SettingsUpdate(actuator_enabled=False))

    settings = store.upsert("dev", SettingsUpdate(threshold=500))

    assert settings.threshold == 500
    assert settings.actuator_enabled is False
    assert store.get("dev") == settings


def test_get_unknown_raises_not_found():
    with pytest.raises(NotFoundError):
        SettingsStore().get("ghost")


def test_ensure_does_not_overwrite_existing():
    store = SettingsStore()
    store.upsert("dev", SettingsUpdate(threshold=300))

    assert store.ensure("dev").threshold == 300
    assert store.ensure("new").threshold == 800


def test_upsert_publishes_settings_change():
    channel = FanoutChannel()
    subscription = channel.subscribe(device_id="dev")
    store = SettingsStore(channel)

    store.upsert("dev", SettingsUpdate(threshold=450))

    [event] = subscription.drain()
    assert event.kind == EventKind.SETTINGS_CHANGED
    assert event.payload == {
        "deviceId": "dev",
        "settings": {"deviceId": "dev", "threshold": 450, "buzzerEnabled": True},
    }


def test_threshold_only_update_keeps_actuator_flag(client, device_id):
    client.post(f"/api/settings/{device_id}", json={"buzzerEnabled": False})

    response = client.post(f"/api/settings/{device_id}", json={"threshold": 500})

    assert response.status_code == 200
    assert response.json()["threshold"] == 500
    assert response.json()["buzzerEnabled"] is False


def test_get_settings(client, device_id):
    response = client.get(f"/api/settings/{device_id}")

    assert response.status_code == 200
    assert response.json() == {"deviceId": device_id, "threshold": 800, "buzzerEnabled": True}


def test_get_settings_unknown_device(client):
    response = client.get("/api/settings/ghost")

    assert response.status_code == 404


def test_post_settings_creates_when_absent(client):
    response = client.post("/api/settings/fresh", json={"buzzerEnabled": False})

    assert response.status_code == 200
    assert response.json() == {"deviceId": "fresh", "threshold": 800, "buzzerEnabled": False}
    assert client.get("/api/settings/fresh").status_code == 200


def test_settings_change_is_mirrored(client, device_id, replica, settle):
    client.post(f"/api/settings/{device_id}", json={"threshold": 650})
    settle()

    assert json.loads(replica.settings[device_id])["threshold"] == 650
