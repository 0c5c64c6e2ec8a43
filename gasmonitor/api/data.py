from typing import Optional

from fastapi import APIRouter, Depends

from gasmonitor.api.dependencies import get_ingest_service
from gasmonitor.models.reading import Reading, ReadingIngest
from gasmonitor.services.ingest_service import IngestService

router = APIRouter()


@router.post("")
async def ingest_reading(
    payload: ReadingIngest,
    service: IngestService = Depends(get_ingest_service),
):
    service.ingest_reading(payload)
    return {"message": "Data received"}


@router.get("/{device_id}", response_model=list[Reading])
async def get_readings(
    device_id: str,
    since: Optional[int] = None,
    service: IngestService = Depends(get_ingest_service),
):
    return service.get_readings(device_id, since)
