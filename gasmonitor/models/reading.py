import itertools
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Provenance(str, Enum):
    ORIGIN = "origin"
    EXTERNAL_STORE = "externalStore"


_sequence = itertools.count()


def new_event_id() -> str:
    # Sorts in creation order within a process, so equal timestamps keep arrival order.
    return f"{next(_sequence):012x}{uuid.uuid4().hex[:20]}"


class Reading(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_event_id)
    device_id: str = Field(alias="deviceId")
    value: float
    timestamp: int
    device_timestamp: Optional[Any] = Field(default=None, alias="deviceTimestamp")
    provenance: Provenance = Provenance.ORIGIN


class ReadingIngest(BaseModel):
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    gas_value: Optional[float] = Field(default=None, alias="gasValue")
    timestamp: Optional[Any] = None
