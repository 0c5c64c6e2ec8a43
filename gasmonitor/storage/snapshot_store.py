import json
import logging
import os
import tempfile
from pathlib import Path

from gasmonitor.core.errors import PersistenceError
from gasmonitor.models.device import Device
from gasmonitor.models.device_settings import DeviceSettings

logger = logging.getLogger(__name__)


class SnapshotStore:
    """JSON snapshot of devices and settings on local disk.

    File layout::

        {"devices": {"<id>": Device, ...}, "settings": {"<id>": Settings, ...}}

    Readings are never written here.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def save(self, devices: list[Device], settings: list[DeviceSettings]) -> None:
        document = {
            "devices": {d.id: d.model_dump(by_alias=True) for d in devices},
            "settings": {s.device_id: s.model_dump(by_alias=True) for s in settings},
        }
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=directory, prefix=f".{self.path.name}.", suffix=".tmp",
                delete=False, encoding="utf-8",
            ) as handle:
                tmp_name = handle.name
                json.dump(document, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            # Atomic on POSIX and Windows; the old snapshot survives a crash before this.
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to write snapshot {self.path}: {e}") from e

    def load(self) -> tuple[list[Device], list[DeviceSettings]]:
        if not self.path.exists():
            logger.info(f"No snapshot at {self.path}, starting empty")
            return [], []

        try:
            with open(self.path, encoding="utf-8") as handle:
                document = json.load(handle)
            devices = [
                Device.model_validate({"deviceId": device_id, **raw})
                for device_id, raw in (document.get("devices") or {}).items()
            ]
            settings = [
                DeviceSettings.model_validate({"deviceId": device_id, **raw})
                for device_id, raw in (document.get("settings") or {}).items()
            ]
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Error loading snapshot {self.path}, starting empty: {e}")
            return [], []

        logger.info(
            f"Snapshot loaded: {len(devices)} devices, {len(settings)} settings"
        )
        return devices, settings
