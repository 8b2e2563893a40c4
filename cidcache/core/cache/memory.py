"""Thread-safe bounded in-memory store."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from itertools import count
from threading import Lock
from typing import Any

from loguru import logger

from cidcache.core.exceptions import LocalStoreError
from cidcache.core.models import LocalStoreStats

from .base import CacheStrategy


@dataclass(slots=True)
class _Slot:
    value: Any
    expires_at: float | None
    seq: int


class LocalStore(CacheStrategy):
    """Process-local cache tier with per-key TTL, a pin side-table and a hard entry cap.

    When the store is full, the unpinned entry with the lowest remaining TTL
    is evicted (oldest insertion wins ties, entries without expiry go last).
    Pinned keys never expire and are never evicted; if every resident entry
    is pinned a new entry is refused with :class:`LocalStoreError`.

    A single ``threading.Lock`` guards all state. No method awaits while
    holding it, so calls from the event loop never block on I/O.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            max_entries: Maximum number of resident entries
            default_ttl: TTL applied when ``set`` is called without one
            clock: Time source in seconds, injectable for tests
        """
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Slot] = {}
        self._pinned: set[str] = set()
        self._seq = count()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def _expiry_for(self, key: str, ttl: int | None) -> float | None:
        if key in self._pinned:
            return None
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return None
        return self._clock() + ttl

    def _is_expired(self, slot: _Slot, now: float) -> bool:
        return slot.expires_at is not None and slot.expires_at <= now

    def _pick_victim(self) -> str | None:
        victim: str | None = None
        victim_rank: tuple[float, int] | None = None
        for key, slot in self._entries.items():
            if key in self._pinned:
                continue
            rank = (slot.expires_at if slot.expires_at is not None else math.inf, slot.seq)
            if victim_rank is None or rank < victim_rank:
                victim, victim_rank = key, rank
        return victim

    async def get(self, key: str) -> Any | None:
        with self._lock:
            slot = self._entries.get(key)
            if slot is None:
                self._misses += 1
                return None

            if self._is_expired(slot, self._clock()):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None

            self._hits += 1
            return slot.value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store ``value``, evicting if the store is full.

        Raises:
            LocalStoreError: every resident entry is pinned
        """
        with self._lock:
            expires_at = self._expiry_for(key, ttl)

            if key not in self._entries:
                now = self._clock()
                while len(self._entries) >= self.max_entries:
                    victim = self._pick_victim()
                    if victim is None:
                        raise LocalStoreError(
                            f"Local store full of pinned entries ({self.max_entries}); cannot admit '{key}'",
                            details={"key": key, "capacity": self.max_entries},
                        )
                    if self._is_expired(self._entries.pop(victim), now):
                        self._expirations += 1
                    else:
                        self._evictions += 1
                        logger.bind(backend="local").debug(f"Evicted '{victim}' to make room for '{key}'")

            self._entries[key] = _Slot(value=value, expires_at=expires_at, seq=next(self._seq))

    async def delete(self, key: str) -> bool:
        with self._lock:
            self._pinned.discard(key)
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._pinned.clear()

    async def get_ttl(self, key: str) -> float | None:
        with self._lock:
            slot = self._entries.get(key)
            if slot is None:
                return None
            if slot.expires_at is None:
                return math.inf
            remaining = slot.expires_at - self._clock()
            if remaining <= 0:
                del self._entries[key]
                self._expirations += 1
                return None
            return remaining

    async def pin(self, key: str) -> bool:
        """Mark ``key`` pinned and drop its expiry. Returns whether an entry is resident.

        The marker is kept for an absent key too, so a later ``set`` stores it
        without expiry. Only ``unpin``, ``delete`` and ``clear`` remove it.
        """
        with self._lock:
            self._pinned.add(key)
            slot = self._entries.get(key)
            if slot is None:
                return False
            slot.expires_at = None
            return True

    async def unpin(self, key: str, ttl: int | None = None) -> bool:
        """Remove the pin marker and re-arm a TTL (``default_ttl`` when omitted)."""
        with self._lock:
            self._pinned.discard(key)
            slot = self._entries.get(key)
            if slot is None:
                return False
            slot.expires_at = self._expiry_for(key, ttl)
            return True

    def is_pinned(self, key: str) -> bool:
        with self._lock:
            return key in self._pinned

    def pinned_keys(self) -> list[str]:
        """Every pin marker, including keys with no resident entry."""
        with self._lock:
            return sorted(self._pinned)

    def keys(self) -> list[str]:
        """Resident, unexpired keys in insertion order."""
        with self._lock:
            now = self._clock()
            return [key for key, slot in self._entries.items() if not self._is_expired(slot, now)]

    def purge_expired(self) -> int:
        """Drop every expired entry, returning how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, slot in self._entries.items() if self._is_expired(slot, now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
            return len(expired)

    def eviction_candidates(self) -> list[tuple[str, float]]:
        """Unpinned ``(key, remaining_ttl)`` pairs, lowest remaining TTL first."""
        with self._lock:
            now = self._clock()
            ranked = sorted(
                (
                    (slot.expires_at - now if slot.expires_at is not None else math.inf, slot.seq, key)
                    for key, slot in self._entries.items()
                    if key not in self._pinned
                ),
            )
            return [(key, remaining) for remaining, _, key in ranked]

    def evict(self, keys: list[str]) -> int:
        """Remove unpinned ``keys``; counted as evictions."""
        removed = 0
        with self._lock:
            for key in keys:
                if key in self._pinned:
                    continue
                if self._entries.pop(key, None) is not None:
                    removed += 1
            self._evictions += removed
        return removed

    def stats(self) -> LocalStoreStats:
        with self._lock:
            return LocalStoreStats(
                entries=len(self._entries),
                capacity=self.max_entries,
                pinned=sum(1 for key in self._pinned if key in self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def size(self) -> int:
        return len(self)
