"""Prometheus metrics helpers for the cache engine."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

_ALLOWED_LOOKUP_RESULTS = {"durable_hit", "local_hit", "miss"}
_ALLOWED_EVICTION_REASONS = {"capacity", "manual", "pressure"}
_ALLOWED_WARM_OUTCOMES = {"hit", "miss", "failed"}


class MetricsCollector:
    """Collects and exposes cache metrics on a private registry."""

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.lookups_total = Counter(
            "cidcache_lookups_total",
            "Cache lookups grouped by where they were answered.",
            ("result",),
            registry=self.registry,
        )
        self.durable_failures_total = Counter(
            "cidcache_durable_failures_total",
            "Durable store calls that failed and were degraded to the local store.",
            ("operation",),
            registry=self.registry,
        )
        self.durable_degraded = Gauge(
            "cidcache_durable_degraded",
            "1 while the durable store is considered unreachable.",
            registry=self.registry,
        )
        self.evictions_total = Counter(
            "cidcache_evictions_total",
            "Entries removed before their TTL elapsed.",
            ("reason",),
            registry=self.registry,
        )
        self.warm_keys_total = Counter(
            "cidcache_warm_keys_total",
            "Keys processed by cache warming.",
            ("outcome",),
            registry=self.registry,
        )
        self.memory_pressure = Gauge(
            "cidcache_memory_pressure_ratio",
            "Last computed memory pressure ratio.",
            registry=self.registry,
        )

    def record_lookup(self, result: str) -> None:
        label = result if result in _ALLOWED_LOOKUP_RESULTS else "__other__"
        self.lookups_total.labels(result=label).inc()

    def record_durable_failure(self, operation: str) -> None:
        self.durable_failures_total.labels(operation=operation).inc()

    def set_degraded(self, degraded: bool) -> None:
        self.durable_degraded.set(1 if degraded else 0)

    def record_evictions(self, reason: str, count: int = 1) -> None:
        if count <= 0:
            return
        label = reason if reason in _ALLOWED_EVICTION_REASONS else "__other__"
        self.evictions_total.labels(reason=label).inc(count)

    def record_warm(self, outcome: str, count: int = 1) -> None:
        if count <= 0:
            return
        label = outcome if outcome in _ALLOWED_WARM_OUTCOMES else "__other__"
        self.warm_keys_total.labels(outcome=label).inc(count)

    def observe_pressure(self, ratio: float) -> None:
        self.memory_pressure.set(ratio)

    def render(self) -> bytes:
        """Render metrics in Prometheus exposition format."""

        return generate_latest(self.registry)


_DEFAULT_COLLECTOR: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Return the process-wide metrics collector instance."""

    global _DEFAULT_COLLECTOR
    if _DEFAULT_COLLECTOR is None:
        _DEFAULT_COLLECTOR = MetricsCollector()
    return _DEFAULT_COLLECTOR


def configure_metrics_collector(collector: MetricsCollector | None) -> None:
    """Override the process-wide metrics collector for application wiring or tests."""

    global _DEFAULT_COLLECTOR
    _DEFAULT_COLLECTOR = collector
