import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

from gasmonitor.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from gasmonitor.core.errors import PersistenceError
from gasmonitor.models.alert import AlertEvent
from gasmonitor.models.device import Device
from gasmonitor.models.device_settings import DeviceSettings
from gasmonitor.models.reading import Provenance, Reading
from gasmonitor.storage.device_store import DeviceRegistry
from gasmonitor.storage.replica_store import ReplicaStore
from gasmonitor.storage.settings_store import SettingsStore
from gasmonitor.storage.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

Record = Union[Reading, AlertEvent, DeviceSettings, Device]


class MirrorWriter:
    """Fire-and-forget writes of origin records to the replica store.

    This is the one place the provenance rule is applied: records that were
    read from the replica are never written back to it. Failed writes are
    logged and dropped, never retried.
    """

    def __init__(self, replica: Optional[ReplicaStore], breaker: CircuitBreaker,
                 enabled: bool = True):
        self.replica = replica
        self.breaker = breaker
        self.enabled = enabled and replica is not None
        self.written = 0
        self.failed = 0
        self.skipped = 0
        self._pending: set[asyncio.Task] = set()

    @staticmethod
    def should_mirror(record: Record) -> bool:
        return getattr(record, "provenance", Provenance.ORIGIN) == Provenance.ORIGIN

    def mirror(self, record: Record) -> Optional[asyncio.Task]:
        if not self.enabled:
            return None
        if not self.should_mirror(record):
            self.skipped += 1
            return None

        if isinstance(record, Reading):
            write = self.replica.write_reading
        elif isinstance(record, AlertEvent):
            write = self.replica.write_alert
        elif isinstance(record, DeviceSettings):
            write = self.replica.write_settings
        elif isinstance(record, Device):
            write = self.replica.write_device
        else:
            raise TypeError(f"Cannot mirror {type(record).__name__}")

        # Snapshot mutable records so later in-memory changes don't leak into this write.
        task = asyncio.create_task(self._write(write, record.model_copy()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, write: Callable[[Record], Awaitable[None]], record: Record) -> None:
        name = type(record).__name__
        try:
            await self.breaker.call(write, record)
        except CircuitBreakerOpenError as e:
            self.failed += 1
            logger.warning(f"Mirror write of {name} skipped: {e}")
            return
        except Exception as e:
            self.failed += 1
            error = PersistenceError(f"Mirror write of {name} failed: {e}")
            logger.error(str(error))
            return
        self.written += 1

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight writes to finish."""
        if self._pending:
            await asyncio.wait(list(self._pending), timeout=timeout)

    def pending_count(self) -> int:
        return len(self._pending)


class PersistenceGateway:
    """Durable snapshot of registry and settings plus mirror-on-write."""

    def __init__(
        self,
        registry: DeviceRegistry,
        settings_store: SettingsStore,
        snapshot_store: SnapshotStore,
        mirror: MirrorWriter,
        interval_seconds: float = 300,
    ):
        self.registry = registry
        self.settings_store = settings_store
        self.snapshot_store = snapshot_store
        self.mirror = mirror
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def load_snapshot(self) -> None:
        devices, settings = self.snapshot_store.load()
        self.registry.load(devices)
        self.settings_store.load(settings)

    async def save_snapshot(self) -> bool:
        # Copy synchronously; ingestion may run while the file is written.
        devices = [d.model_copy() for d in self.registry.list()]
        settings = [s.model_copy() for s in self.settings_store.all()]
        try:
            await asyncio.to_thread(self.snapshot_store.save, devices, settings)
        except PersistenceError as e:
            logger.error(f"Error saving data: {e}")
            return False
        logger.info(f"Data saved to {self.snapshot_store.path}")
        return True

    async def _snapshot_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.save_snapshot()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._snapshot_loop())
            logger.info(f"Snapshot every {self.interval_seconds}s to {self.snapshot_store.path}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self.save_snapshot()
        await self.mirror.drain(timeout=5)

    def mirror_reading(self, reading: Reading) -> None:
        self.mirror.mirror(reading)

    def mirror_alert(self, alert: AlertEvent) -> None:
        self.mirror.mirror(alert)

    def mirror_settings(self, settings: DeviceSettings) -> None:
        self.mirror.mirror(settings)

    def mirror_device(self, device: Device) -> None:
        self.mirror.mirror(device)
