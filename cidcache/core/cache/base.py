"""Cache strategy interface."""

from abc import ABC, abstractmethod
from typing import Any


class CacheStrategy(ABC):
    """Abstract base class for a single cache tier."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value or None."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value. ``ttl`` of 0 means no expiry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a value, returning whether it existed."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every value."""

    @abstractmethod
    async def get_ttl(self, key: str) -> float | None:
        """Remaining TTL in seconds, ``math.inf`` when the value never expires."""
