import json
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis

from gasmonitor.models.alert import AlertEvent
from gasmonitor.models.device import Device
from gasmonitor.models.device_settings import DeviceSettings
from gasmonitor.models.reading import Provenance, Reading

_RECORD_EXCLUDE = {"provenance"}


def _dump(record) -> str:
    # Provenance is a property of how a record was obtained, not of the record.
    return record.model_dump_json(by_alias=True, exclude=_RECORD_EXCLUDE)


def _load_reading(raw) -> Reading:
    return Reading.model_validate({**json.loads(raw), "provenance": Provenance.EXTERNAL_STORE})


def _load_alert(raw) -> AlertEvent:
    return AlertEvent.model_validate({**json.loads(raw), "provenance": Provenance.EXTERNAL_STORE})


class ReplicaStore(ABC):
    """External replicated store shared by the service and its observers.

    Writes are keyed by record id, so writing the same record twice leaves a
    single copy. Everything read back is tagged with externalStore provenance.
    """

    @abstractmethod
    async def write_reading(self, reading: Reading) -> None: ...

    @abstractmethod
    async def write_alert(self, alert: AlertEvent) -> None: ...

    @abstractmethod
    async def write_settings(self, settings: DeviceSettings) -> None: ...

    @abstractmethod
    async def write_device(self, device: Device) -> None: ...

    @abstractmethod
    async def load_readings(self, device_id: str, limit: int) -> list[Reading]:
        """Most recent ``limit`` readings, oldest first."""

    @abstractmethod
    async def load_alerts(self, device_id: str, limit: int) -> list[AlertEvent]:
        """Most recent ``limit`` alerts, newest first."""

    @abstractmethod
    async def load_settings(self, device_id: str) -> Optional[DeviceSettings]: ...

    async def close(self) -> None:
        pass


class RedisReplicaStore(ReplicaStore):
    """Replica kept in Redis.

    Per device, readings and alerts are a hash of id -> record plus a sorted
    set of id scored by timestamp for ordered, bounded reads. Equal scores
    fall back to id order, which is creation order.
    """

    def __init__(self, client: redis.Redis, prefix: str = "gasmonitor"):
        self.redis = client
        self.prefix = prefix

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix, *parts))

    async def _write_record(self, collection: str, device_id: str, record_id: str,
                            timestamp: int, payload: str) -> None:
        async with self.redis.pipeline() as pipe:
            pipe.hset(self._key(collection, device_id), record_id, payload)
            pipe.zadd(self._key(collection, device_id, "index"), {record_id: timestamp})
            await pipe.execute()

    async def write_reading(self, reading: Reading) -> None:
        await self._write_record(
            "sensorData", reading.device_id, reading.id, reading.timestamp, _dump(reading)
        )

    async def write_alert(self, alert: AlertEvent) -> None:
        await self._write_record(
            "alerts", alert.device_id, alert.id, alert.timestamp, _dump(alert)
        )

    async def write_settings(self, settings: DeviceSettings) -> None:
        await self.redis.set(
            self._key("settings", settings.device_id),
            settings.model_dump_json(by_alias=True),
        )

    async def write_device(self, device: Device) -> None:
        async with self.redis.pipeline() as pipe:
            pipe.set(self._key("devices", device.id), device.model_dump_json(by_alias=True))
            pipe.sadd(self._key("devices"), device.id)
            await pipe.execute()

    async def _load_records(self, collection: str, device_id: str, limit: int,
                            newest_first: bool) -> list[bytes]:
        if limit <= 0:
            return []
        index = self._key(collection, device_id, "index")
        if newest_first:
            ids = await self.redis.zrevrange(index, 0, limit - 1)
        else:
            ids = await self.redis.zrange(index, -limit, -1)
        if not ids:
            return []
        records = await self.redis.hmget(self._key(collection, device_id), ids)
        return [r for r in records if r is not None]

    async def load_readings(self, device_id: str, limit: int) -> list[Reading]:
        records = await self._load_records("sensorData", device_id, limit, newest_first=False)
        return [_load_reading(r) for r in records]

    async def load_alerts(self, device_id: str, limit: int) -> list[AlertEvent]:
        records = await self._load_records("alerts", device_id, limit, newest_first=True)
        return [_load_alert(r) for r in records]

    async def load_settings(self, device_id: str) -> Optional[DeviceSettings]:
        data = await self.redis.get(self._key("settings", device_id))
        if not data:
            return None
        return DeviceSettings.model_validate_json(data)

    async def close(self) -> None:
        await self.redis.aclose()


class InMemoryReplicaStore(ReplicaStore):
    """Process-local replica for development without Redis.

    ``writes`` records every write call as ``(collection, record_id)``.
    """

    def __init__(self):
        self.readings: dict[str, dict[str, str]] = {}
        self.alerts: dict[str, dict[str, str]] = {}
        self.settings: dict[str, str] = {}
        self.devices: dict[str, str] = {}
        self.writes: list[tuple[str, str]] = []

    async def write_reading(self, reading: Reading) -> None:
        self.writes.append(("sensorData", reading.id))
        self.readings.setdefault(reading.device_id, {})[reading.id] = _dump(reading)

    async def write_alert(self, alert: AlertEvent) -> None:
        self.writes.append(("alerts", alert.id))
        self.alerts.setdefault(alert.device_id, {})[alert.id] = _dump(alert)

    async def write_settings(self, settings: DeviceSettings) -> None:
        self.writes.append(("settings", settings.device_id))
        self.settings[settings.device_id] = settings.model_dump_json(by_alias=True)

    async def write_device(self, device: Device) -> None:
        self.writes.append(("devices", device.id))
        self.devices[device.id] = device.model_dump_json(by_alias=True)

    async def load_readings(self, device_id: str, limit: int) -> list[Reading]:
        readings = [_load_reading(r) for r in self.readings.get(device_id, {}).values()]
        readings.sort(key=lambda r: (r.timestamp, r.id))
        return readings[-limit:] if limit > 0 else []

    async def load_alerts(self, device_id: str, limit: int) -> list[AlertEvent]:
        alerts = [_load_alert(r) for r in self.alerts.get(device_id, {}).values()]
        alerts.sort(key=lambda a: (a.timestamp, a.id), reverse=True)
        return alerts[:limit] if limit > 0 else []

    async def load_settings(self, device_id: str) -> Optional[DeviceSettings]:
        data = self.settings.get(device_id)
        if data is None:
            return None
        return DeviceSettings.model_validate_json(data)
