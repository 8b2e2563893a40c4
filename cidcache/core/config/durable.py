"""Durable store connection configuration."""

from dataclasses import dataclass


@dataclass
class DurableStoreConfig:
    """Redis connection settings for the durable tier."""

    enabled: bool = True
    url: str = "redis://localhost:6379/0"
    namespace: str = ""
    connect_timeout: float = 2.0
    operation_timeout: float = 2.0
    max_retries: int = 1
    retry_base_delay: float = 0.1
    reconnect_interval: float = 30.0

    def __post_init__(self) -> None:
        if self.connect_timeout <= 0 or self.operation_timeout <= 0:
            raise ValueError("durable timeouts must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
