from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceLiveness(str, Enum):
    ONLINE = "online"
    IDLE = "idle"
    OFFLINE = "offline"


class Device(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="deviceId")
    kind: Optional[str] = Field(default=None, alias="type")
    address: Optional[str] = Field(default=None, alias="ipAddress")
    last_seen: int = Field(alias="lastSeen")


class DeviceView(Device):
    status: DeviceLiveness


class DeviceRegistration(BaseModel):
    # deviceId is optional here so a missing id surfaces as our 400, not a 422
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    kind: Optional[str] = Field(default=None, alias="type")
    address: Optional[str] = Field(default=None, alias="ipAddress")
