from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId")
    threshold: float
    actuator_enabled: bool = Field(alias="buzzerEnabled")


class SettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    threshold: Optional[float] = None
    actuator_enabled: Optional[bool] = Field(default=None, alias="buzzerEnabled")
