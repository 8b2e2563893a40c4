"""Tests for the Prometheus metrics collector."""

from prometheus_client import CollectorRegistry

from cidcache.core.monitoring import MetricsCollector, configure_metrics_collector, get_metrics_collector


def _value(collector, name, **labels):
    return collector.registry.get_sample_value(name, labels)


def test_counters_and_gauges() -> None:
    collector = MetricsCollector(registry=CollectorRegistry())

    collector.record_lookup("durable_hit")
    collector.record_lookup("local_hit")
    collector.record_lookup("local_hit")
    collector.record_durable_failure("get")
    collector.record_evictions("pressure", 3)
    collector.record_warm("failed", 2)
    collector.set_degraded(True)
    collector.observe_pressure(0.42)

    assert _value(collector, "cidcache_lookups_total", result="local_hit") == 2
    assert _value(collector, "cidcache_durable_failures_total", operation="get") == 1
    assert _value(collector, "cidcache_evictions_total", reason="pressure") == 3
    assert _value(collector, "cidcache_warm_keys_total", outcome="failed") == 2
    assert _value(collector, "cidcache_durable_degraded") == 1
    assert _value(collector, "cidcache_memory_pressure_ratio") == 0.42


def test_unknown_labels_are_bucketed() -> None:
    collector = MetricsCollector(registry=CollectorRegistry())

    collector.record_lookup("weird")
    collector.record_evictions("manual", 0)

    assert _value(collector, "cidcache_lookups_total", result="__other__") == 1
    assert _value(collector, "cidcache_evictions_total", reason="manual") is None


def test_render_exposition_format() -> None:
    collector = MetricsCollector(registry=CollectorRegistry())
    collector.record_lookup("miss")

    output = collector.render().decode("utf-8")

    assert 'cidcache_lookups_total{result="miss"} 1.0' in output


def test_process_wide_collector_override() -> None:
    custom = MetricsCollector(registry=CollectorRegistry())
    configure_metrics_collector(custom)
    try:
        assert get_metrics_collector() is custom
    finally:
        configure_metrics_collector(None)

    assert get_metrics_collector() is not custom
