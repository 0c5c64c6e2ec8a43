from typing import Optional

from gasmonitor.models.alert import AlertEvent, AlertLevel
from gasmonitor.models.device_settings import DeviceSettings
from gasmonitor.models.reading import Provenance, Reading

WARNING_RATIO = 0.8


def classify(value: float, threshold: float, warning_ratio: float = WARNING_RATIO) -> AlertLevel:
    """Danger strictly above the threshold; a value equal to it is Normal."""
    if value > threshold:
        return AlertLevel.DANGER
    if threshold * warning_ratio < value < threshold:
        return AlertLevel.WARNING
    return AlertLevel.NORMAL


def evaluate(
    reading: Reading,
    settings: Optional[DeviceSettings],
    warning_ratio: float = WARNING_RATIO,
) -> Optional[AlertEvent]:
    """Alert for a reading above its device's threshold, or None.

    The threshold is captured into the event, so later settings changes do
    not alter alerts already raised.
    """
    if settings is None:
        return None
    if classify(reading.value, settings.threshold, warning_ratio) != AlertLevel.DANGER:
        return None
    return AlertEvent(
        device_id=reading.device_id,
        value=reading.value,
        threshold=settings.threshold,
        timestamp=reading.timestamp,
        provenance=Provenance.ORIGIN,
    )
