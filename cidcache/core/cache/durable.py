"""Durable store contract and its Redis implementation."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError

from cidcache.core.config import DurableStoreConfig
from cidcache.core.exceptions import DurableStoreUnavailableError

T = TypeVar("T")

_GLOB_SPECIAL = "*?[]\\"


@dataclass(frozen=True)
class MemoryInfo:
    used_bytes: int = 0
    max_bytes: int = 0


class DurableStore(Protocol):
    """Key/value backend with native TTL used as the durable cache tier.

    Every method may raise :class:`DurableStoreUnavailableError`. A ``ttl``
    of 0 means the key never expires. Remaining TTLs are reported in
    seconds, ``math.inf`` for keys without expiry.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def ping(self) -> bool: ...

    async def get(self, key: str) -> bytes | None: ...

    async def get_with_ttl(self, key: str) -> tuple[bytes | None, float]: ...

    async def set_with_ttl(self, key: str, value: str | bytes, ttl: int) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def delete(self, *keys: str) -> int: ...

    async def persist(self, key: str) -> bool: ...

    async def expire(self, key: str, ttl: int) -> bool: ...

    async def ttls(self, keys: list[str]) -> dict[str, float]: ...

    async def keys_matching(self, prefix: str, limit: int | None = None) -> list[str]: ...

    async def count_matching(self, prefix: str) -> int: ...

    async def delete_matching(self, prefix: str) -> int: ...

    async def memory_info(self) -> MemoryInfo: ...


def _glob_escape(prefix: str) -> str:
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in prefix)


def _remaining_from_pttl(pttl: int) -> float | None:
    """Map a Redis PTTL reply to seconds; None when the key is missing."""
    if pttl == -2:
        return None
    if pttl == -1:
        return math.inf
    return pttl / 1000.0


class RedisDurableStore:
    """Durable store backed by ``redis.asyncio``.

    Every call is bounded by ``operation_timeout``; enumeration calls get
    ``scan_timeout``. Redis, socket and timeout errors surface as
    :class:`DurableStoreUnavailableError`.

    Args:
        redis: An existing ``redis.asyncio.Redis`` client. When omitted one is
            created from ``url`` on :meth:`connect` and closed by :meth:`close`.
    """

    backend_id = "redis"

    def __init__(
        self,
        redis: Any = None,
        *,
        url: str = "redis://localhost:6379/0",
        connect_timeout: float = 2.0,
        operation_timeout: float = 2.0,
        scan_timeout: float | None = None,
        scan_count: int = 500,
    ) -> None:
        self._redis = redis
        self._owns_client = redis is None
        self.url = url
        self.connect_timeout = connect_timeout
        self.operation_timeout = operation_timeout
        self.scan_timeout = scan_timeout if scan_timeout is not None else operation_timeout * 5
        self.scan_count = scan_count

    @classmethod
    def from_config(cls, config: DurableStoreConfig) -> RedisDurableStore:
        return cls(
            url=config.url,
            connect_timeout=config.connect_timeout,
            operation_timeout=config.operation_timeout,
        )

    @property
    def client(self) -> Any:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.url,
                socket_connect_timeout=self.connect_timeout,
                socket_timeout=self.operation_timeout,
                decode_responses=False,
            )
        return self._redis

    async def _call(self, operation: str, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout or self.operation_timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise DurableStoreUnavailableError(
                f"Redis {operation} failed: {exc or type(exc).__name__}",
                operation,
            ) from exc

    async def connect(self) -> None:
        await self._call("connect", self.client.ping(), timeout=self.connect_timeout)
        logger.bind(backend="durable").info(f"Connected to durable store at {self.url}")

    async def close(self) -> None:
        if self._redis is None or not self._owns_client:
            return
        try:
            await self._redis.aclose()
        except (RedisError, OSError) as exc:
            logger.bind(backend="durable").debug(f"Ignoring error while closing durable store: {exc}")
        self._redis = None

    async def ping(self) -> bool:
        return bool(await self._call("ping", self.client.ping()))

    async def get(self, key: str) -> bytes | None:
        return await self._call("get", self.client.get(key))

    async def get_with_ttl(self, key: str) -> tuple[bytes | None, float]:
        """Fetch a value and its remaining TTL in one round trip."""

        async def _fetch() -> list[Any]:
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.get(key)
                pipe.pttl(key)
                return await pipe.execute()

        value, pttl = await self._call("get", _fetch())
        remaining = _remaining_from_pttl(int(pttl))
        if value is None or remaining is None:
            return None, 0.0
        return value, remaining

    async def set_with_ttl(self, key: str, value: str | bytes, ttl: int) -> None:
        if ttl > 0:
            await self._call("set", self.client.set(key, value, ex=int(ttl)))
        else:
            await self._call("set", self.client.set(key, value))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", self.client.exists(key)))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("delete", self.client.delete(*keys)))

    async def persist(self, key: str) -> bool:
        return bool(await self._call("persist", self.client.persist(key)))

    async def expire(self, key: str, ttl: int) -> bool:
        # EXPIRE with 0 deletes the key, so "no expiry" maps to PERSIST
        if ttl <= 0:
            return await self.persist(key)
        return bool(await self._call("expire", self.client.expire(key, int(ttl))))

    async def ttls(self, keys: list[str]) -> dict[str, float]:
        """Remaining TTL per key; keys that no longer exist are omitted."""
        if not keys:
            return {}

        async def _fetch() -> list[Any]:
            async with self.client.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.pttl(key)
                return await pipe.execute()

        replies = await self._call("ttl", _fetch(), timeout=self.scan_timeout)
        remaining: dict[str, float] = {}
        for key, pttl in zip(keys, replies, strict=True):
            seconds = _remaining_from_pttl(int(pttl))
            if seconds is not None:
                remaining[key] = seconds
        return remaining

    async def keys_matching(self, prefix: str, limit: int | None = None) -> list[str]:
        async def _scan() -> list[str]:
            found: list[str] = []
            async for raw in self.client.scan_iter(match=f"{_glob_escape(prefix)}*", count=self.scan_count):
                found.append(raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw)
                if limit is not None and len(found) >= limit:
                    break
            return found

        return await self._call("scan", _scan(), timeout=self.scan_timeout)

    async def count_matching(self, prefix: str) -> int:
        if not prefix:
            return int(await self._call("dbsize", self.client.dbsize()))
        return len(await self.keys_matching(prefix))

    async def delete_matching(self, prefix: str) -> int:
        keys = await self.keys_matching(prefix)
        deleted = 0
        for start in range(0, len(keys), self.scan_count):
            deleted += await self.delete(*keys[start : start + self.scan_count])
        return deleted

    async def memory_info(self) -> MemoryInfo:
        info = await self._call("info", self.client.info("memory"))
        return MemoryInfo(
            used_bytes=int(info.get("used_memory", 0) or 0),
            max_bytes=int(info.get("maxmemory", 0) or 0),
        )
