from fastapi import APIRouter, Depends

from gasmonitor.api.dependencies import get_ingest_service
from gasmonitor.models.device_settings import DeviceSettings, SettingsUpdate
from gasmonitor.services.ingest_service import IngestService

router = APIRouter()


@router.get("/{device_id}", response_model=DeviceSettings)
async def get_settings(
    device_id: str,
    service: IngestService = Depends(get_ingest_service),
):
    return service.get_settings(device_id)


@router.post("/{device_id}", response_model=DeviceSettings)
async def update_settings(
    device_id: str,
    update: SettingsUpdate,
    service: IngestService = Depends(get_ingest_service),
):
    return service.update_settings(device_id, update)
