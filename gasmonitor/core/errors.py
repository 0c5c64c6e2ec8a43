class GasMonitorError(Exception):
    pass


class ValidationError(GasMonitorError):
    """A required field is missing or malformed. Surfaced as HTTP 400."""


class NotFoundError(GasMonitorError):
    """A scoped read referenced an unknown device. Surfaced as HTTP 404."""


class PersistenceError(GasMonitorError):
    """Snapshot or mirror write failed. Logged, never surfaced to callers."""


class TransportError(GasMonitorError):
    """Public exposure of the service failed. Logged, serving continues."""
