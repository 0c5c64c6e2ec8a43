from collections import deque
from typing import Optional

from gasmonitor.core.errors import ValidationError
from gasmonitor.models.reading import Reading


class TimeSeriesStore:
    """Most recent readings per device, oldest evicted first.

    Only the newest ``max_readings`` per device are kept regardless of age;
    time windows are applied by consumers over the returned sequence.
    """

    def __init__(self, max_readings: int = 100):
        if max_readings < 1:
            raise ValueError("max_readings must be positive")
        self.max_readings = max_readings
        self._series: dict[str, deque[Reading]] = {}

    def arrival_timestamp(self, device_id: str, now: int) -> int:
        """Timestamp to stamp on the next reading so arrival order never goes back."""
        series = self._series.get(device_id)
        if series:
            return max(now, series[-1].timestamp)
        return now

    def append(self, device_id: str, reading: Reading) -> None:
        series = self._series.get(device_id)
        if series is None:
            series = deque(maxlen=self.max_readings)
            self._series[device_id] = series
        elif series and reading.timestamp < series[-1].timestamp:
            raise ValidationError(
                f"Reading for {device_id} is older than the last stored reading"
            )
        # deque(maxlen=N) drops the leftmost item once full
        series.append(reading)

    def query(self, device_id: str, since: Optional[int] = None) -> list[Reading]:
        series = self._series.get(device_id)
        if not series:
            return []
        if since is None:
            return list(series)
        return [r for r in series if r.timestamp >= since]

    def has(self, device_id: str) -> bool:
        return device_id in self._series

    def count(self, device_id: str) -> int:
        return len(self._series.get(device_id, ()))
