"""cidcache core - engine, storage tiers and ambient services."""

from cidcache.core.cache import CacheEngine, LocalStore, RedisDurableStore
from cidcache.core.config import CidCacheConfig, ConfigManager
from cidcache.core.health import DurableState, HealthTracker
from cidcache.core.models import BlobPayload, CacheEntry, CacheHealth, CacheStats, WarmReport

__all__ = [
    "BlobPayload",
    "CacheEngine",
    "CacheEntry",
    "CacheHealth",
    "CacheStats",
    "CidCacheConfig",
    "ConfigManager",
    "DurableState",
    "HealthTracker",
    "LocalStore",
    "RedisDurableStore",
    "WarmReport",
]
