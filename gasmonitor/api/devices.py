from fastapi import APIRouter, Depends

from gasmonitor.api.dependencies import get_ingest_service
from gasmonitor.models.device import DeviceRegistration, DeviceView
from gasmonitor.services.ingest_service import IngestService

router = APIRouter()


@router.post("/register", status_code=201)
async def register_device(
    registration: DeviceRegistration,
    service: IngestService = Depends(get_ingest_service),
):
    _, settings = service.register_device(registration)
    return {
        "message": "Device registered successfully",
        "settings": settings.model_dump(mode="json", by_alias=True),
    }


@router.get("", response_model=list[DeviceView])
async def list_devices(service: IngestService = Depends(get_ingest_service)):
    return service.list_devices()
