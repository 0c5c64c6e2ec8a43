import logging
from typing import Iterable, Optional

from gasmonitor.core.errors import NotFoundError, ValidationError
from gasmonitor.core.fanout import FanoutChannel
from gasmonitor.models.device_settings import DeviceSettings, SettingsUpdate
from gasmonitor.models.events import EventKind, FanoutEvent

logger = logging.getLogger(__name__)


class SettingsStore:
    def __init__(
        self,
        channel: Optional[FanoutChannel] = None,
        default_threshold: float = 800,
        default_actuator_enabled: bool = True,
    ):
        self.channel = channel
        self.default_threshold = default_threshold
        self.default_actuator_enabled = default_actuator_enabled
        self._settings: dict[str, DeviceSettings] = {}

    def get(self, device_id: str) -> DeviceSettings:
        settings = self._settings.get(device_id)
        if settings is None:
            raise NotFoundError(f"Device settings not found for {device_id}")
        return settings

    def find(self, device_id: str) -> Optional[DeviceSettings]:
        return self._settings.get(device_id)

    def ensure(self, device_id: str) -> DeviceSettings:
        """Return the device's settings, creating the defaults silently."""
        settings = self._settings.get(device_id)
        if settings is None:
            settings = self._defaults(device_id)
            self._settings[device_id] = settings
        return settings

    def upsert(self, device_id: str, update: SettingsUpdate) -> DeviceSettings:
        if not device_id:
            raise ValidationError("Device ID is required")

        current = self._settings.get(device_id) or self._defaults(device_id)
        changes = update.model_dump(exclude_none=True)
        settings = current.model_copy(update=changes)
        self._settings[device_id] = settings

        logger.info(f"Updated settings for {device_id}: {settings.model_dump(by_alias=True)}")
        if self.channel is not None:
            self.channel.publish(
                FanoutEvent(
                    EventKind.SETTINGS_CHANGED,
                    {"deviceId": device_id, "settings": settings.model_dump(mode="json", by_alias=True)},
                    device_id=device_id,
                )
            )
        return settings

    def all(self) -> list[DeviceSettings]:
        return list(self._settings.values())

    def load(self, settings: Iterable[DeviceSettings]) -> None:
        self._settings = {s.device_id: s for s in settings}

    def _defaults(self, device_id: str) -> DeviceSettings:
        return DeviceSettings(
            device_id=device_id,
            threshold=self.default_threshold,
            actuator_enabled=self.default_actuator_enabled,
        )
