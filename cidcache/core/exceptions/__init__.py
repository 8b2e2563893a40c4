"""Exception hierarchy for cidcache."""

from cidcache.core.exceptions.base import (
    CacheError,
    CidCacheError,
    DurableStoreError,
    DurableStoreUnavailableError,
    InvalidInputError,
    InvalidKeyError,
    LocalStoreError,
)

__all__ = [
    "CidCacheError",
    "CacheError",
    "InvalidInputError",
    "InvalidKeyError",
    "LocalStoreError",
    "DurableStoreError",
    "DurableStoreUnavailableError",
]
