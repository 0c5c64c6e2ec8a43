import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gasmonitor.api import data, devices, realtime
from gasmonitor.api import settings as settings_api
from gasmonitor.config.settings import Settings, get_settings
from gasmonitor.core.circuit_breaker import CircuitBreaker
from gasmonitor.core.clock import Clock, now_ms
from gasmonitor.core.errors import NotFoundError, TransportError, ValidationError
from gasmonitor.core.fanout import FanoutChannel
from gasmonitor.core.redis_client import create_redis_client
from gasmonitor.core.tunnel import Tunnel
from gasmonitor.services.ingest_service import IngestService
from gasmonitor.services.persistence_service import MirrorWriter, PersistenceGateway
from gasmonitor.storage.device_store import DeviceRegistry
from gasmonitor.storage.replica_store import (
    InMemoryReplicaStore,
    RedisReplicaStore,
    ReplicaStore,
)
from gasmonitor.storage.settings_store import SettingsStore
from gasmonitor.storage.snapshot_store import SnapshotStore
from gasmonitor.storage.timeseries_store import TimeSeriesStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_replica_store(settings: Settings) -> ReplicaStore:
    if settings.replica_backend == "memory":
        return InMemoryReplicaStore()
    if settings.replica_backend == "redis":
        return RedisReplicaStore(create_redis_client(settings), settings.mirror_key_prefix)
    raise ValueError(f"Unknown replica backend: {settings.replica_backend}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    gateway: PersistenceGateway = app.state.gateway
    gateway.load_snapshot()
    gateway.start()

    tunnel = None
    if app.state.settings.tunnel_command:
        tunnel = Tunnel(app.state.settings.tunnel_command)
        try:
            await tunnel.start()
        except TransportError as e:
            logger.error(f"{e}. Running in local mode only.")
            tunnel = None

    logger.info(f"Gas monitor started on port {app.state.settings.port}")
    yield

    if tunnel is not None:
        await tunnel.stop()
    await gateway.stop()
    await app.state.replica_store.close()
    logger.info("Gas monitor stopped")


def create_app(
    settings: Optional[Settings] = None,
    replica_store: Optional[ReplicaStore] = None,
    clock: Clock = now_ms,
) -> FastAPI:
    settings = settings or get_settings()
    replica_store = replica_store or create_replica_store(settings)

    channel = FanoutChannel(settings.fanout_queue_max_size)
    registry = DeviceRegistry(
        channel,
        clock=clock,
        online_seconds=settings.liveness_online_seconds,
        idle_seconds=settings.liveness_idle_seconds,
    )
    settings_store = SettingsStore(
        channel,
        default_threshold=settings.default_threshold,
        default_actuator_enabled=settings.default_actuator_enabled,
    )
    timeseries = TimeSeriesStore(settings.max_readings_per_device)
    mirror = MirrorWriter(
        replica_store,
        CircuitBreaker.from_settings("replica_store", settings),
        enabled=settings.mirror_enabled,
    )
    gateway = PersistenceGateway(
        registry,
        settings_store,
        SnapshotStore(settings.snapshot_path),
        mirror,
        interval_seconds=settings.snapshot_interval_seconds,
    )

    app = FastAPI(title="Gas Monitor", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.replica_store = replica_store
    app.state.gateway = gateway
    app.state.ingest_service = IngestService(
        registry, settings_store, timeseries, channel, gateway,
        clock=clock, warning_ratio=settings.warning_ratio,
    )

    app.include_router(devices.router, prefix="/api/devices", tags=["devices"])
    app.include_router(data.router, prefix="/api/data", tags=["data"])
    app.include_router(settings_api.router, prefix="/api/settings", tags=["settings"])
    app.include_router(realtime.router, tags=["realtime"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "gasmonitor",
            "subscribers": channel.subscriber_count(),
            "mirror_pending": mirror.pending_count(),
        }

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    return app


def run():
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
