"""Cache tiers and the cache & pinning engine."""

from cidcache.core.cache.base import CacheStrategy
from cidcache.core.cache.codec import decode_entry, encode_entry
from cidcache.core.cache.durable import DurableStore, MemoryInfo, RedisDurableStore
from cidcache.core.cache.engine import CacheEngine
from cidcache.core.cache.guarded import GuardedDurableStore
from cidcache.core.cache.keyspace import MAX_KEY_LENGTH, CacheKeyspace, validate_key
from cidcache.core.cache.memory import LocalStore

__all__ = [
    "CacheEngine",
    "CacheKeyspace",
    "CacheStrategy",
    "DurableStore",
    "GuardedDurableStore",
    "LocalStore",
    "MAX_KEY_LENGTH",
    "MemoryInfo",
    "RedisDurableStore",
    "decode_entry",
    "encode_entry",
    "validate_key",
]
