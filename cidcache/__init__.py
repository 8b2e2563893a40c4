"""cidcache - two-tier cache and pinning engine for content-addressed blobs.

A bounded in-process store backed by a shared Redis tier. Redis outages never
fail a request: the engine degrades to the local store and recovers once a
liveness probe succeeds.

Examples:
    >>> import asyncio
    >>> from cidcache import CacheEngine, CidCacheConfig
    >>>
    >>> async def main():
    ...     async with CacheEngine.from_config(CidCacheConfig()) as cache:
    ...         await cache.set("bafy-example", b"hello", ttl=60)
    ...         entry = await cache.get("bafy-example")
    ...         print(entry.data)
    >>>
    >>> asyncio.run(main())
"""

from cidcache.core.cache import CacheEngine, LocalStore, RedisDurableStore
from cidcache.core.config import CidCacheConfig, ConfigManager, load_config_from_env
from cidcache.core.exceptions import (
    CidCacheError,
    InvalidInputError,
    InvalidKeyError,
    LocalStoreError,
)
from cidcache.core.logging import configure_logging
from cidcache.core.models import BlobPayload, CacheEntry, CacheHealth, CacheStats, WarmReport

__version__ = "0.1.0"

__all__ = [
    "BlobPayload",
    "CacheEngine",
    "CacheEntry",
    "CacheHealth",
    "CacheStats",
    "CidCacheConfig",
    "CidCacheError",
    "ConfigManager",
    "InvalidInputError",
    "InvalidKeyError",
    "LocalStore",
    "LocalStoreError",
    "RedisDurableStore",
    "WarmReport",
    "configure_logging",
    "load_config_from_env",
]
