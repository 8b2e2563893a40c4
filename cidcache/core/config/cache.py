"""Cache engine configuration."""

from dataclasses import dataclass


@dataclass
class CacheConfig:
    """Local store sizing, TTL defaults and background policy."""

    default_ttl: int = 3600
    max_entries: int = 1000
    sweep_interval: float = 600.0
    warm_batch_size: int = 10
    warm_batch_delay: float = 0.1
    preload_sample_size: int = 20
    pressure_threshold: float = 0.9
    eviction_batch_size: int = 10

    def __post_init__(self) -> None:
        if self.default_ttl < 0:
            raise ValueError("default_ttl must be >= 0")
        if self.max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if self.warm_batch_size < 1:
            raise ValueError("warm_batch_size must be >= 1")
        if self.warm_batch_delay < 0:
            raise ValueError("warm_batch_delay must be >= 0")
