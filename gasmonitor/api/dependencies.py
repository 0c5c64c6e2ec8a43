from fastapi import Request

from gasmonitor.services.ingest_service import IngestService


def get_ingest_service(request: Request) -> IngestService:
    return request.app.state.ingest_service
