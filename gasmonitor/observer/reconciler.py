import asyncio
import logging
from collections import deque
from typing import Optional

import httpx

from gasmonitor.config.settings import Settings
from gasmonitor.core.fanout import FanoutChannel, Subscription
from gasmonitor.models.alert import AlertEvent, AlertLevel
from gasmonitor.models.device_settings import DeviceSettings
from gasmonitor.models.events import EventKind, FanoutEvent
from gasmonitor.models.reading import Reading
from gasmonitor.services.alert_service import WARNING_RATIO, classify
from gasmonitor.services.persistence_service import MirrorWriter
from gasmonitor.storage.replica_store import ReplicaStore

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000

WINDOWS_MS = {
    "1h": HOUR_MS,
    "3h": 3 * HOUR_MS,
    "6h": 6 * HOUR_MS,
    "24h": 24 * HOUR_MS,
}


def filter_window(readings: list[Reading], window: str, now: int) -> list[Reading]:
    """Readings newer than ``window`` ago; unknown windows fall back to 1h."""
    if window == "all":
        return list(readings)
    cutoff = now - WINDOWS_MS.get(window, HOUR_MS)
    return [r for r in readings if r.timestamp > cutoff]


class HttpOriginClient:
    """Reads history from the origin service's HTTP API."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def fetch_readings(self, device_id: str) -> list[Reading]:
        response = await self.client.get(f"/api/data/{device_id}")
        if response.status_code == 404:
            return []
        response.raise_for_status()
        return [Reading.model_validate(item) for item in response.json()]

    async def fetch_settings(self, device_id: str) -> Optional[DeviceSettings]:
        response = await self.client.get(f"/api/settings/{device_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return DeviceSettings.model_validate(response.json())


class ReplicaReconciler:
    """Observer-side working set for one device.

    Subscribes to live events first, then loads history from the replica and
    the origin, so nothing published during the load is missed. Records are
    identified by id; a record seen from more than one source is kept once.
    Live origin records are mirrored onward through ``mirror``, which refuses
    anything that came from the replica.
    """

    def __init__(
        self,
        device_id: str,
        channel: FanoutChannel,
        replica: ReplicaStore,
        origin: HttpOriginClient,
        mirror: MirrorWriter,
        history_limit: int = 1000,
        alert_limit: int = 20,
        warning_ratio: float = WARNING_RATIO,
    ):
        self.device_id = device_id
        self.channel = channel
        self.replica = replica
        self.origin = origin
        self.mirror = mirror
        self.warning_ratio = warning_ratio

        self.readings: deque[Reading] = deque(maxlen=history_limit)
        # Newest first.
        self.alerts: deque[AlertEvent] = deque(maxlen=alert_limit)
        self.settings: Optional[DeviceSettings] = None
        self.subscription: Optional[Subscription] = None
        self._reading_ids: set[str] = set()
        self._alert_ids: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        device_id: str,
        settings: Settings,
        channel: FanoutChannel,
        replica: ReplicaStore,
        origin: HttpOriginClient,
        mirror: MirrorWriter,
    ) -> "ReplicaReconciler":
        return cls(
            device_id,
            channel,
            replica,
            origin,
            mirror,
            history_limit=settings.observer_history_limit,
            alert_limit=settings.observer_alert_limit,
            warning_ratio=settings.warning_ratio,
        )

    async def open(self) -> None:
        self.subscription = self.channel.subscribe(device_id=self.device_id)

        (
            external_readings,
            external_alerts,
            external_settings,
            origin_readings,
            origin_settings,
        ) = (
            await asyncio.gather(
                self._load("replica readings", self.replica.load_readings(
                    self.device_id, self.readings.maxlen), []),
                self._load("replica alerts", self.replica.load_alerts(
                    self.device_id, self.alerts.maxlen), []),
                self._load("replica settings", self.replica.load_settings(self.device_id), None),
                self._load("origin readings", self.origin.fetch_readings(self.device_id), []),
                self._load("origin settings", self.origin.fetch_settings(self.device_id), None),
            )
        )

        # The origin is authoritative; the replica covers for it when unreachable.
        self.settings = origin_settings if origin_settings is not None else external_settings
        self._seed_readings(external_readings, origin_readings)
        for alert in external_alerts:
            if alert.id not in self._alert_ids:
                self._alert_ids.add(alert.id)
                self.alerts.append(alert)

        logger.info(
            f"Loaded {len(self.readings)} readings and {len(self.alerts)} alerts "
            f"for {self.device_id} ({len(external_readings)} from replica, "
            f"{len(origin_readings)} from origin)"
        )

    async def _load(self, what: str, call, default):
        try:
            return await call
        except Exception as e:
            logger.error(f"Error loading {what} for {self.device_id}: {e}")
            return default

    def _seed_readings(self, external: list[Reading], origin: list[Reading]) -> None:
        base = external if external else origin
        for reading in base:
            self._add_reading(reading)
        if external:
            # The replica may lag the origin; take only what it has not seen yet.
            newest = self.readings[-1].timestamp if self.readings else None
            for reading in origin:
                if newest is None or reading.timestamp >= newest:
                    self._add_reading(reading)

    def _add_reading(self, reading: Reading) -> bool:
        if reading.id in self._reading_ids:
            return False
        if len(self.readings) == self.readings.maxlen:
            self._reading_ids.discard(self.readings[0].id)
        self._reading_ids.add(reading.id)
        self.readings.append(reading)
        return True

    def _add_alert(self, alert: AlertEvent) -> bool:
        if alert.id in self._alert_ids:
            return False
        if len(self.alerts) == self.alerts.maxlen:
            self._alert_ids.discard(self.alerts[-1].id)
        self._alert_ids.add(alert.id)
        self.alerts.appendleft(alert)
        return True

    def handle(self, event: FanoutEvent) -> None:
        if event.device_id is not None and event.device_id != self.device_id:
            return

        if event.kind == EventKind.NEW_READING:
            # Older origins send the device id only on the outer payload.
            data = {"deviceId": event.payload.get("deviceId", self.device_id)}
            data.update(event.payload["data"])
            reading = Reading.model_validate(data)
            if self._add_reading(reading):
                self.mirror.mirror(reading)
        elif event.kind == EventKind.ALERT_RAISED:
            alert = AlertEvent.model_validate(event.payload)
            if self._add_alert(alert):
                self.mirror.mirror(alert)
        elif event.kind == EventKind.SETTINGS_CHANGED:
            # Last writer wins: the newest live update replaces what was loaded.
            self.settings = DeviceSettings.model_validate(event.payload["settings"])

    def handle_message(self, message: dict) -> None:
        """Apply a message received over the realtime websocket."""
        self.handle(FanoutEvent.from_wire(message))

    def pump(self) -> int:
        """Apply every event already queued, without waiting for more."""
        events = self.subscription.drain() if self.subscription else []
        for event in events:
            self.handle(event)
        return len(events)

    async def run(self) -> None:
        async for event in self.subscription:
            self.handle(event)

    def close(self) -> None:
        if self.subscription is not None:
            self.subscription.close()

    def latest(self) -> Optional[Reading]:
        return self.readings[-1] if self.readings else None

    def status(self) -> Optional[AlertLevel]:
        latest = self.latest()
        if latest is None or self.settings is None:
            return None
        return classify(latest.value, self.settings.threshold, self.warning_ratio)

    def window(self, window: str, now: int) -> list[Reading]:
        return filter_window(list(self.readings), window, now)
