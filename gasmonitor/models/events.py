from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class EventKind(str, Enum):
    DEVICE_REGISTRY_CHANGED = "deviceRegistryChanged"
    NEW_READING = "newReading"
    SETTINGS_CHANGED = "settingsChanged"
    ALERT_RAISED = "alertRaised"


# Names used on the realtime wire.
WIRE_NAMES = {
    EventKind.DEVICE_REGISTRY_CHANGED: "deviceUpdate",
    EventKind.NEW_READING: "newData",
    EventKind.SETTINGS_CHANGED: "settingsUpdate",
    EventKind.ALERT_RAISED: "alert",
}


@dataclass(frozen=True)
class FanoutEvent:
    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)
    # None means the event is not scoped to one device.
    device_id: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return {"event": WIRE_NAMES[self.kind], "data": self.payload}

    @classmethod
    def from_wire(cls, message: dict[str, Any]) -> "FanoutEvent":
        kinds = {name: k for k, name in WIRE_NAMES.items()}
        if message.get("event") not in kinds:
            raise ValueError(f"Unknown realtime event: {message.get('event')}")
        kind = kinds[message["event"]]
        payload = message.get("data") or {}
        return cls(kind, payload, device_id=payload.get("deviceId"))
