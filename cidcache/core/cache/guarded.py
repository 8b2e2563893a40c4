"""Durable store wrapper enforcing degrade-and-continue."""

from __future__ import annotations

from loguru import logger

from cidcache.core.exceptions import DurableStoreError
from cidcache.core.health import HealthTracker
from cidcache.core.monitoring import MetricsCollector
from cidcache.core.patterns import ExponentialBackoffRetry, with_degradation

from .durable import DurableStore, MemoryInfo


class GuardedDurableStore:
    """Wraps a :class:`DurableStore` so no backend failure reaches the engine.

    Data methods return a :class:`~cidcache.core.patterns.DurableResult` and
    are skipped outright while the tracker is degraded. :meth:`connect` and
    :meth:`probe` bypass that check; they are the only way back to ready.
    """

    def __init__(
        self,
        store: DurableStore,
        tracker: HealthTracker,
        metrics: MetricsCollector | None = None,
    ):
        self.store = store
        self.tracker = tracker
        self.metrics = metrics

    def _record_failure(self, operation: str, exc: DurableStoreError) -> None:
        self.tracker.mark_degraded(operation, exc)
        if self.metrics is not None:
            self.metrics.record_durable_failure(operation)

    async def connect(self, retry: ExponentialBackoffRetry) -> bool:
        """Connect with retries. Leaves the tracker degraded on failure."""
        try:
            await retry.execute(self.store.connect)
        except DurableStoreError as exc:
            logger.bind(backend="durable", error_code=exc.error_code).warning(
                f"Durable store unavailable after {retry.attempt_count} attempt(s), "
                f"falling back to local store: {exc.message}"
            )
            self._record_failure("connect", exc)
            return False
        self.tracker.mark_ready()
        return True

    async def probe(self) -> bool:
        """Explicit liveness probe; the only path from degraded back to ready."""
        try:
            await self.store.ping()
        except DurableStoreError as exc:
            logger.bind(backend="durable", error_code=exc.error_code).debug(f"Durable probe failed: {exc.message}")
            self._record_failure("ping", exc)
            return False
        self.tracker.mark_ready()
        return True

    async def close(self) -> None:
        await self.store.close()

    @with_degradation("get", default=(None, 0.0))
    async def get_with_ttl(self, key: str) -> tuple[bytes | None, float]:
        return await self.store.get_with_ttl(key)

    @with_degradation("set")
    async def set_with_ttl(self, key: str, value: str | bytes, ttl: int) -> None:
        await self.store.set_with_ttl(key, value, ttl)

    @with_degradation("exists", default=False)
    async def exists(self, key: str) -> bool:
        return await self.store.exists(key)

    @with_degradation("delete", default=0)
    async def delete(self, *keys: str) -> int:
        return await self.store.delete(*keys)

    @with_degradation("persist", default=False)
    async def persist(self, key: str) -> bool:
        return await self.store.persist(key)

    @with_degradation("expire", default=False)
    async def expire(self, key: str, ttl: int) -> bool:
        return await self.store.expire(key, ttl)

    @with_degradation("ttl", default_factory=dict)
    async def ttls(self, keys: list[str]) -> dict[str, float]:
        return await self.store.ttls(keys)

    @with_degradation("scan", default_factory=list)
    async def keys_matching(self, prefix: str, limit: int | None = None) -> list[str]:
        return await self.store.keys_matching(prefix, limit)

    @with_degradation("count", default=0)
    async def count_matching(self, prefix: str) -> int:
        return await self.store.count_matching(prefix)

    @with_degradation("delete", default=0)
    async def delete_matching(self, prefix: str) -> int:
        return await self.store.delete_matching(prefix)

    @with_degradation("info", default_factory=MemoryInfo)
    async def memory_info(self) -> MemoryInfo:
        return await self.store.memory_info()
