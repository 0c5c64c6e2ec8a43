from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 5000

    max_readings_per_device: int = 100
    default_threshold: float = 800
    default_actuator_enabled: bool = True
    warning_ratio: float = 0.8

    liveness_online_seconds: int = 120
    liveness_idle_seconds: int = 600

    snapshot_path: str = "data.json"
    snapshot_interval_seconds: float = 300

    redis_url: str = "redis://localhost:6379"
    redis_max_connections: int = 50
    redis_socket_timeout: int = 5

    replica_backend: str = "redis"
    mirror_enabled: bool = True
    mirror_key_prefix: str = "gasmonitor"

    circuit_breaker_failure_threshold: int = 6
    circuit_breaker_timeout_seconds: int = 60
    circuit_breaker_half_open_max_calls: int = 3

    fanout_queue_max_size: int = 1000

    observer_history_limit: int = 1000
    observer_alert_limit: int = 20

    tunnel_command: Optional[str] = None

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
