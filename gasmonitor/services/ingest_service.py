import logging
from typing import Optional

from gasmonitor.core.clock import Clock, now_ms
from gasmonitor.core.errors import NotFoundError, ValidationError
from gasmonitor.core.fanout import FanoutChannel
from gasmonitor.models.alert import AlertEvent
from gasmonitor.models.device import Device, DeviceRegistration, DeviceView
from gasmonitor.models.device_settings import DeviceSettings, SettingsUpdate
from gasmonitor.models.events import EventKind, FanoutEvent
from gasmonitor.models.reading import Reading, ReadingIngest
from gasmonitor.services.alert_service import WARNING_RATIO, evaluate
from gasmonitor.services.persistence_service import PersistenceGateway
from gasmonitor.storage.device_store import DeviceRegistry
from gasmonitor.storage.settings_store import SettingsStore
from gasmonitor.storage.timeseries_store import TimeSeriesStore

logger = logging.getLogger(__name__)


class IngestService:
    """Origin-side pipeline: registry, retention, alerting, fan-out, mirroring.

    Every public method mutates in-memory state without awaiting, so calls
    never interleave with each other on the event loop. Mirror writes are
    scheduled as background tasks and never affect the result.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        settings_store: SettingsStore,
        timeseries: TimeSeriesStore,
        channel: FanoutChannel,
        gateway: PersistenceGateway,
        clock: Clock = now_ms,
        warning_ratio: float = WARNING_RATIO,
    ):
        self.registry = registry
        self.settings_store = settings_store
        self.timeseries = timeseries
        self.channel = channel
        self.gateway = gateway
        self.clock = clock
        self.warning_ratio = warning_ratio

    def register_device(self, registration: DeviceRegistration) -> tuple[Device, DeviceSettings]:
        device = self.registry.register(
            registration.device_id, registration.kind, registration.address
        )
        settings = self.settings_store.ensure(device.id)
        self.gateway.mirror_device(device)
        self.gateway.mirror_settings(settings)
        return device, settings

    def ingest_reading(self, payload: ReadingIngest) -> tuple[Reading, Optional[AlertEvent]]:
        if not payload.device_id or payload.gas_value is None:
            raise ValidationError("Device ID and gas value are required")

        device_id = payload.device_id
        self.registry.touch(device_id)

        reading = Reading(
            device_id=device_id,
            value=payload.gas_value,
            timestamp=self.timeseries.arrival_timestamp(device_id, self.clock()),
            device_timestamp=payload.timestamp,
        )
        self.timeseries.append(device_id, reading)
        self.channel.publish(
            FanoutEvent(
                EventKind.NEW_READING,
                {"deviceId": device_id, "data": reading.model_dump(mode="json", by_alias=True)},
                device_id=device_id,
            )
        )

        alert = evaluate(reading, self.settings_store.find(device_id), self.warning_ratio)
        if alert is not None:
            logger.info(
                f"Alert for {device_id}: value {alert.value} above threshold {alert.threshold}"
            )
            self.channel.publish(
                FanoutEvent(
                    EventKind.ALERT_RAISED,
                    alert.model_dump(mode="json", by_alias=True),
                    device_id=device_id,
                )
            )

        self.gateway.mirror_reading(reading)
        if alert is not None:
            self.gateway.mirror_alert(alert)
        return reading, alert

    def list_devices(self) -> list[DeviceView]:
        now = self.clock()
        return [
            DeviceView(**device.model_dump(), status=self.registry.liveness(device.id, now))
            for device in self.registry.list()
        ]

    def get_readings(self, device_id: str, since: Optional[int] = None) -> list[Reading]:
        if not self.registry.exists(device_id) and not self.timeseries.has(device_id):
            raise NotFoundError(f"Device data not found for {device_id}")
        return self.timeseries.query(device_id, since)

    def get_settings(self, device_id: str) -> DeviceSettings:
        return self.settings_store.get(device_id)

    def update_settings(self, device_id: str, update: SettingsUpdate) -> DeviceSettings:
        settings = self.settings_store.upsert(device_id, update)
        self.gateway.mirror_settings(settings)
        return settings
