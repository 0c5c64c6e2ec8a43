import logging
from typing import Iterable, Optional

from gasmonitor.core.clock import Clock, now_ms
from gasmonitor.core.errors import NotFoundError, ValidationError
from gasmonitor.core.fanout import FanoutChannel
from gasmonitor.models.device import Device, DeviceLiveness
from gasmonitor.models.events import EventKind, FanoutEvent

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Known devices in registration order. Devices are never removed."""

    def __init__(
        self,
        channel: Optional[FanoutChannel] = None,
        clock: Clock = now_ms,
        online_seconds: int = 120,
        idle_seconds: int = 600,
    ):
        self.channel = channel
        self.clock = clock
        self.online_seconds = online_seconds
        self.idle_seconds = idle_seconds
        # dicts keep insertion order, which is registration order here
        self._devices: dict[str, Device] = {}

    def register(
        self, device_id: Optional[str], kind: Optional[str], address: Optional[str]
    ) -> Device:
        if not device_id:
            raise ValidationError("Device ID is required")

        device = self._devices.get(device_id)
        if device is None:
            device = Device(id=device_id, kind=kind, address=address, last_seen=self.clock())
            self._devices[device_id] = device
        else:
            device.kind = kind
            device.address = address
            self._stamp(device)

        logger.info(f"Device registered: {device_id} ({kind}) at {address}")
        self._notify()
        return device

    def touch(self, device_id: str) -> None:
        device = self._devices.get(device_id)
        if device is not None:
            self._stamp(device)

    def get(self, device_id: str) -> Device:
        device = self._devices.get(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found")
        return device

    def exists(self, device_id: str) -> bool:
        return device_id in self._devices

    def list(self) -> list[Device]:
        return list(self._devices.values())

    def liveness(self, device_id: str, now: Optional[int] = None) -> DeviceLiveness:
        device = self.get(device_id)
        now = self.clock() if now is None else now
        elapsed = now - device.last_seen
        if elapsed < self.online_seconds * 1000:
            return DeviceLiveness.ONLINE
        if elapsed < self.idle_seconds * 1000:
            return DeviceLiveness.IDLE
        return DeviceLiveness.OFFLINE

    def load(self, devices: Iterable[Device]) -> None:
        """Seed from a snapshot, replacing current contents."""
        self._devices = {device.id: device for device in devices}

    def _stamp(self, device: Device) -> None:
        # Never move lastSeen backwards if the wall clock steps back.
        device.last_seen = max(device.last_seen, self.clock())

    def changed_event(self) -> FanoutEvent:
        devices = [d.model_dump(mode="json", by_alias=True) for d in self._devices.values()]
        return FanoutEvent(EventKind.DEVICE_REGISTRY_CHANGED, {"devices": devices})

    def _notify(self) -> None:
        if self.channel is not None:
            self.channel.publish(self.changed_event())
