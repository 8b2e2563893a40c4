"""
Cache & pinning engine.

Orchestrates the two cache tiers:

- the local store, an in-process bounded cache that always answers
- the durable store, a Redis-backed shared cache that may disappear at any time

Writes go to both tiers (best effort on durable, mandatory on local). Reads
prefer the durable tier while it is healthy and mirror hits locally. Durable
failures never propagate: the engine degrades to the local store until an
explicit liveness probe succeeds.

Consistency between the tiers is deliberately weak. A ``set`` racing a
``get`` from another caller may observe the previous durable value, and a
delete issued by another process is not seen by this process's local store
until the local copy expires.
"""

from __future__ import annotations

import asyncio
import contextlib
import math
from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

from cidcache.core.config import CidCacheConfig
from cidcache.core.exceptions import CacheError, InvalidInputError, LocalStoreError
from cidcache.core.health import DurableState, HealthTracker, ReconnectMonitor
from cidcache.core.models import (
    BlobPayload,
    CacheEntry,
    CacheHealth,
    CacheStats,
    DurableStoreStats,
    WarmReport,
)
from cidcache.core.monitoring import MetricsCollector, get_metrics_collector
from cidcache.core.patterns import ExponentialBackoffRetry, RetryConfig

from .codec import decode_entry, encode_entry
from .durable import DurableStore, RedisDurableStore
from .guarded import GuardedDurableStore
from .keyspace import CacheKeyspace, validate_key
from .memory import LocalStore

PayloadLike = BlobPayload | CacheEntry | bytes | bytearray | memoryview | str | Mapping[str, Any]


def _coerce_payload(value: PayloadLike) -> BlobPayload:
    if isinstance(value, BlobPayload):
        return value
    if isinstance(value, CacheEntry):
        return value.payload
    if isinstance(value, (bytes, bytearray, memoryview, str)):
        return BlobPayload(data=value)
    if isinstance(value, Mapping):
        return BlobPayload.model_validate(dict(value))
    raise InvalidInputError(f"Unsupported payload type: {type(value).__name__}", field="payload")


class CacheEngine:
    """Dual-tier blob cache with pinning, TTL expiry and pressure-driven eviction.

    One instance per process, created and owned by the application's wiring
    code. Call :meth:`initialize` before use and :meth:`destroy` on shutdown,
    or use the engine as an async context manager.
    """

    def __init__(
        self,
        config: CidCacheConfig | None = None,
        *,
        durable: DurableStore | None = None,
        local: LocalStore | None = None,
        tracker: HealthTracker | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Args:
            config: Engine configuration, defaults apply when omitted
            durable: Durable backend; ``None`` runs the engine local-only
            local: Pre-built local store, sized from ``config`` when omitted
            tracker: Durable health tracker shared with the guard
            metrics: Metrics collector, the process-wide one when omitted
        """
        self.config = config or CidCacheConfig()
        cache_config = self.config.cache
        self.local = local or LocalStore(
            max_entries=cache_config.max_entries,
            default_ttl=cache_config.default_ttl,
        )
        self.tracker = tracker or HealthTracker()
        self.metrics = metrics or get_metrics_collector()
        self.keyspace = CacheKeyspace(self.config.durable.namespace)
        self.durable = GuardedDurableStore(durable, self.tracker, self.metrics) if durable is not None else None
        self._monitor = (
            ReconnectMonitor(self.tracker, self._probe, interval=self.config.durable.reconnect_interval)
            if self.durable is not None
            else None
        )
        self._sweeper: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._initialized = False
        # durable writes skipped while degraded, replayed on recovery
        self._pending_unpins: set[str] = set()
        self._pending_deletes: set[str] = set()

        self.durable_hits = 0
        self.local_hits = 0
        self.misses = 0

        self.tracker.add_listener(self._on_state_change)
        self.metrics.set_degraded(self.durable is not None and not self.tracker.is_ready)

    @classmethod
    def from_config(cls, config: CidCacheConfig, **kwargs: Any) -> CacheEngine:
        """Build an engine with a Redis durable tier when ``config.durable.enabled``."""
        durable = RedisDurableStore.from_config(config.durable) if config.durable.enabled else None
        return cls(config, durable=durable, **kwargs)

    # ------------------------------------------------------------------ lifecycle

    async def initialize(self) -> None:
        """Connect the durable tier and start background tasks.

        A durable store that cannot be reached leaves the engine usable in
        degraded mode.
        """
        if self._initialized:
            return
        self._initialized = True

        if self.durable is not None:
            durable_config = self.config.durable
            retry = ExponentialBackoffRetry(
                RetryConfig(
                    max_attempts=durable_config.max_retries + 1,
                    base_delay=durable_config.retry_base_delay,
                )
            )
            if await self.durable.connect(retry):
                await self.resync_pins()
            if self._monitor is not None:
                self._monitor.start()

        if self.config.cache.sweep_interval > 0:
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop(), name="cidcache-sweep")

        logger.bind(backend=self.backend).info(
            f"Cache engine initialised (backend={self.backend}, capacity={self.local.max_entries})"
        )

    async def destroy(self) -> None:
        """Stop background work and release the durable connection."""
        if self._monitor is not None:
            await self._monitor.stop()

        tasks = [*self._background]
        if self._sweeper is not None:
            tasks.append(self._sweeper)
            self._sweeper = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._background.clear()

        if self.durable is not None:
            await self.durable.close()
        self._initialized = False
        logger.info("Cache engine stopped")

    async def __aenter__(self) -> CacheEngine:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.destroy()

    @property
    def backend(self) -> str:
        """Tier currently treated as the source of truth."""
        return "durable" if self.durable is not None and self.tracker.is_ready else "local"

    # ------------------------------------------------------------------ reads / writes

    async def get(self, key: str) -> CacheEntry | None:
        """Look up ``key``, preferring the durable tier while it is healthy."""
        validate_key(key)

        if self.durable is not None:
            result = await self.durable.get_with_ttl(self.keyspace.blob(key))
            raw, remaining = result.value
            if result.ok and raw is not None:
                entry = await self._decode(key, raw)
                if entry is not None:
                    await self._mirror(entry, remaining)
                    self.durable_hits += 1
                    self.metrics.record_lookup("durable_hit")
                    return entry

        entry = await self.local.get(key)
        if entry is not None:
            self.local_hits += 1
            self.metrics.record_lookup("local_hit")
            return entry

        self.misses += 1
        self.metrics.record_lookup("miss")
        return None

    async def set(self, key: str, payload: PayloadLike, ttl: int | None = None) -> CacheEntry:
        """Write ``payload`` to both tiers.

        Args:
            key: Content identifier
            payload: Blob bytes with content type
            ttl: Seconds to live, ``default_ttl`` when omitted, 0 for no expiry

        Raises:
            InvalidKeyError: malformed key
            InvalidInputError: negative ttl or unsupported payload
            LocalStoreError: local store full of pinned entries
        """
        validate_key(key)
        if ttl is None:
            ttl = self.config.cache.default_ttl
        elif ttl < 0:
            raise InvalidInputError("ttl must be >= 0", field="ttl")

        entry = CacheEntry.from_payload(key, _coerce_payload(payload), ttl)

        if self.durable is not None:
            pinned = await self.is_pinned(key)
            await self.durable.set_with_ttl(self.keyspace.blob(key), encode_entry(entry), 0 if pinned else ttl)

        await self.local.set(key, entry, ttl)
        return entry

    async def delete(self, key: str) -> bool:
        """Remove an entry and its pin marker from both tiers. Idempotent."""
        validate_key(key)
        durable_removed = 0
        if self.durable is not None:
            result = await self.durable.delete(self.keyspace.blob(key), self.keyspace.pin(key))
            durable_removed = result.value
            if not result.ok:
                self._pending_deletes.add(key)
                self._pending_unpins.discard(key)
        local_removed = await self.local.delete(key)
        return bool(durable_removed) or local_removed

    async def clear(self) -> None:
        """Drop every entry and pin marker in this engine's namespace."""
        if self.durable is not None:
            await self.durable.delete_matching(self.keyspace.blob_prefix)
            await self.durable.delete_matching(self.keyspace.pin_prefix)
        await self.local.clear()
        logger.bind(backend=self.backend).info("Cache cleared")

    # ------------------------------------------------------------------ pinning

    async def pin(self, key: str) -> bool:
        """Exempt ``key`` from TTL expiry and eviction.

        Returns False, and changes nothing, when the key is not cached in
        either tier.
        """
        validate_key(key)
        present = await self.local.get_ttl(key) is not None
        if not present and self.durable is not None:
            present = (await self.durable.exists(self.keyspace.blob(key))).value
        if not present:
            logger.debug(f"Ignoring pin for uncached key '{key}'")
            return False

        if self.durable is not None:
            await self.durable.set_with_ttl(self.keyspace.pin(key), "1", 0)
            await self.durable.persist(self.keyspace.blob(key))
        self._pending_unpins.discard(key)
        await self.local.pin(key)
        return True

    async def unpin(self, key: str) -> bool:
        """Return ``key`` to the default TTL lifecycle. Returns whether it was pinned.

        An unpin the durable tier misses is queued and replayed by
        :meth:`resync_pins` once the durable tier is back.
        """
        validate_key(key)
        was_pinned = await self.is_pinned(key)
        default_ttl = self.config.cache.default_ttl

        if self.durable is not None:
            marker = await self.durable.delete(self.keyspace.pin(key))
            if marker.ok:
                await self.durable.expire(self.keyspace.blob(key), default_ttl)
            else:
                self._pending_unpins.add(key)
        await self.local.unpin(key, default_ttl)
        return was_pinned

    async def is_pinned(self, key: str) -> bool:
        """Durable pin marker while healthy, the local mirror otherwise."""
        validate_key(key)
        if self.durable is not None and key not in self._pending_unpins and key not in self._pending_deletes:
            result = await self.durable.exists(self.keyspace.pin(key))
            if result.ok:
                return bool(result.value)
        return self.local.is_pinned(key)

    async def resync_pins(self) -> int:
        """Reconcile the durable tier with pin changes made while it was unreachable.

        Deletes and unpins queued while degraded are replayed first, then
        every locally known pin marker is pushed. Stops at the first durable
        failure, leaving the rest queued. Returns the number of pin markers
        pushed.
        """
        if self.durable is None:
            return 0

        for key in sorted(self._pending_deletes):
            removed = await self.durable.delete(self.keyspace.blob(key), self.keyspace.pin(key))
            if not removed.ok:
                return 0
            self._pending_deletes.discard(key)

        default_ttl = self.config.cache.default_ttl
        for key in sorted(self._pending_unpins):
            marker = await self.durable.delete(self.keyspace.pin(key))
            if not marker.ok:
                return 0
            await self.durable.expire(self.keyspace.blob(key), default_ttl)
            self._pending_unpins.discard(key)

        synced = 0
        for key in self.local.pinned_keys():
            marker = await self.durable.set_with_ttl(self.keyspace.pin(key), "1", 0)
            if not marker.ok:
                break
            await self.durable.persist(self.keyspace.blob(key))
            synced += 1
        if synced:
            logger.bind(backend="durable").info(f"Re-synchronised {synced} pin marker(s) to durable store")
        return synced

    # ------------------------------------------------------------------ reporting

    async def get_stats(self) -> CacheStats:
        durable_stats = DurableStoreStats()
        if self.durable is not None:
            keys = await self.durable.count_matching(self.keyspace.blob_prefix)
            memory = await self.durable.memory_info()
            if keys.ok and memory.ok:
                durable_stats = DurableStoreStats(
                    reachable=True,
                    keys=keys.value,
                    used_memory=memory.value.used_bytes,
                    max_memory=memory.value.max_bytes,
                )

        return CacheStats(
            local=self.local.stats(),
            durable=durable_stats,
            backend=self.backend,
            durable_state=self.tracker.state.value if self.durable is not None else "disabled",
            durable_hits=self.durable_hits,
            local_hits=self.local_hits,
            misses=self.misses,
        )

    async def health_check(self) -> CacheHealth:
        """Probe the durable tier and report readiness. Never raises."""
        if self.durable is None:
            return CacheHealth(status="healthy", backend="local", details={"durable": "disabled"})

        if await self._probe():
            return CacheHealth(status="healthy", backend="durable", details=self.tracker.snapshot())
        return CacheHealth(status="degraded", backend="local", details=self.tracker.snapshot())

    async def memory_pressure(self) -> float:
        """Fullness ratio: Redis used/max memory when known, else local entries/capacity."""
        ratio: float | None = None
        if self.durable is not None:
            result = await self.durable.memory_info()
            info = result.value
            if result.ok and info.used_bytes > 0 and info.max_bytes > 0:
                ratio = info.used_bytes / info.max_bytes
        if ratio is None:
            ratio = len(self.local) / self.local.max_entries
        self.metrics.observe_pressure(ratio)
        return ratio

    # ------------------------------------------------------------------ warming

    async def warm_cache(
        self,
        keys: Iterable[str],
        *,
        batch_size: int | None = None,
        delay: float | None = None,
    ) -> WarmReport:
        """Issue a ``get`` for every key, in throttled batches.

        Each batch runs concurrently; batches are separated by ``delay``
        seconds. A failing key is counted and logged without affecting the
        others.
        """
        unique = list(dict.fromkeys(keys))
        batch_size = batch_size or self.config.cache.warm_batch_size
        delay = self.config.cache.warm_batch_delay if delay is None else delay
        report = WarmReport(requested=len(unique))

        for start in range(0, len(unique), batch_size):
            if start:
                await asyncio.sleep(delay)
            batch = unique[start : start + batch_size]
            results = await asyncio.gather(*(self.get(key) for key in batch), return_exceptions=True)
            for key, result in zip(batch, results, strict=True):
                if isinstance(result, Exception):
                    logger.warning(f"Cache warm failed for '{key}': {result}")
                    report.failed += 1
                    report.failed_keys.append(key)
                elif isinstance(result, BaseException):
                    raise result
                elif result is None:
                    report.misses += 1
                else:
                    report.hits += 1

        self.metrics.record_warm("hit", report.hits)
        self.metrics.record_warm("miss", report.misses)
        self.metrics.record_warm("failed", report.failed)
        logger.debug(
            f"Warmed {report.requested} key(s): {report.hits} hit, {report.misses} miss, {report.failed} failed"
        )
        return report

    def warm_in_background(self, keys: Iterable[str]) -> asyncio.Task[WarmReport]:
        """Schedule :meth:`warm_cache` as a task owned by the engine."""
        task = asyncio.get_running_loop().create_task(self.warm_cache(list(keys)), name="cidcache-warm")
        self._track(task)
        return task

    async def preload_popular_content(self, limit: int | None = None) -> WarmReport:
        """Warm a bounded sample of known keys, enumerated from the durable tier when healthy."""
        limit = limit or self.config.cache.preload_sample_size
        keys: list[str] | None = None

        if self.durable is not None:
            result = await self.durable.keys_matching(self.keyspace.blob_prefix, limit)
            if result.ok:
                keys = [cid for raw in result.value if (cid := self.keyspace.cid_from_blob(raw))]

        if keys is None:
            keys = self.local.keys()[:limit]
        return await self.warm_cache(keys)

    # ------------------------------------------------------------------ eviction

    async def evict_least_used(self, count: int) -> list[str]:
        """Evict up to ``count`` unpinned entries, lowest remaining TTL first."""
        return await self._evict(count, "manual")

    async def relieve_pressure(self) -> list[str]:
        """Evict a batch of entries when memory pressure crosses the threshold."""
        ratio = await self.memory_pressure()
        if ratio < self.config.cache.pressure_threshold:
            return []
        logger.bind(backend=self.backend).info(
            f"Memory pressure {ratio:.2f} above {self.config.cache.pressure_threshold:.2f}, evicting"
        )
        return await self._evict(self.config.cache.eviction_batch_size, "pressure")

    async def _evict(self, count: int, reason: str) -> list[str]:
        if count < 0:
            raise InvalidInputError("count must be >= 0", field="count")
        if count == 0:
            return []

        ranking = dict(self.local.eviction_candidates())
        if self.durable is not None:
            durable_ranking, durable_pins = await self._durable_eviction_ranking()
            ranking.update(durable_ranking)
            # pinned by another process, or before this one restarted
            for key in durable_pins:
                ranking.pop(key, None)

        victims = [key for key, _ in sorted(ranking.items(), key=lambda item: item[1])[:count]]
        if not victims:
            return []

        if self.durable is not None:
            await self.durable.delete(*(self.keyspace.blob(key) for key in victims))
        self.local.evict(victims)

        self.metrics.record_evictions(reason, len(victims))
        logger.bind(backend=self.backend).debug(f"Evicted {len(victims)} entr(ies) ({reason}): {victims}")
        return victims

    async def _durable_eviction_ranking(self) -> tuple[dict[str, float], set[str]]:
        """Remaining TTL of unpinned durable blobs, and the keys pinned in the durable tier."""
        pins = await self.durable.keys_matching(self.keyspace.pin_prefix)
        blobs = await self.durable.keys_matching(self.keyspace.blob_prefix)
        if not (pins.ok and blobs.ok):
            return {}, set()

        pinned = {cid for raw in pins.value if (cid := self.keyspace.cid_from_pin(raw))}
        candidates: dict[str, str] = {}
        for raw in blobs.value:
            cid = self.keyspace.cid_from_blob(raw)
            if cid and cid not in pinned and not self.local.is_pinned(cid):
                candidates[raw] = cid

        ttls = await self.durable.ttls(list(candidates))
        return {candidates[raw]: remaining for raw, remaining in ttls.value.items()}, pinned

    # ------------------------------------------------------------------ internals

    async def _decode(self, key: str, raw: bytes) -> CacheEntry | None:
        try:
            return decode_entry(raw)
        except CacheError as exc:
            logger.bind(backend="durable", error_code=exc.error_code).warning(
                f"Dropping unreadable durable entry for '{key}': {exc.message}"
            )
            await self.durable.delete(self.keyspace.blob(key))
            return None

    async def _mirror(self, entry: CacheEntry, remaining: float) -> None:
        ttl = 0 if math.isinf(remaining) else max(1, math.ceil(remaining))
        try:
            await self.local.set(entry.key, entry, ttl)
        except LocalStoreError as exc:
            logger.bind(backend="local").warning(f"Skipping local mirror of '{entry.key}': {exc.message}")

    async def _probe(self) -> bool:
        """Liveness probe; a recovery reconciles pins before reporting ready."""
        if self.durable is None:
            return False
        recovering = not self.tracker.is_ready
        ready = await self.durable.probe()
        if ready and recovering and self._initialized:
            await self.resync_pins()
        return ready

    def _on_state_change(self, old: DurableState, new: DurableState) -> None:
        self.metrics.set_degraded(new is DurableState.DEGRADED)

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cache.sweep_interval)
            try:
                purged = self.local.purge_expired()
                if purged:
                    logger.bind(backend="local").debug(f"Purged {purged} expired local entr(ies)")
                await self.relieve_pressure()
            except Exception:
                logger.exception("Cache sweep failed")
