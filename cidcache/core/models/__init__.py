"""Data models for cidcache."""

from cidcache.core.models.entry import DEFAULT_CONTENT_TYPE, BlobPayload, CacheEntry
from cidcache.core.models.stats import (
    CacheHealth,
    CacheStats,
    DurableStoreStats,
    LocalStoreStats,
    WarmReport,
)

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "BlobPayload",
    "CacheEntry",
    "CacheHealth",
    "CacheStats",
    "DurableStoreStats",
    "LocalStoreStats",
    "WarmReport",
]
