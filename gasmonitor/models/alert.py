from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from gasmonitor.models.reading import Provenance, new_event_id


class AlertLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


class AlertEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_event_id)
    device_id: str = Field(alias="deviceId")
    value: float
    threshold: float
    timestamp: int
    provenance: Provenance = Provenance.ORIGIN
