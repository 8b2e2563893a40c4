"""Tests for cache warming and preloading."""

import asyncio
import time

import pytest

from cidcache.core.models import BlobPayload

PAYLOAD = BlobPayload(data=b"warm", content_type="text/plain")


class TestWarmCache:
    @pytest.mark.asyncio
    async def test_reports_hits_and_misses(self, engine, metrics):
        await engine.set("a", PAYLOAD)

        report = await engine.warm_cache(["a", "b", "a"])

        assert report.requested == 2
        assert report.hits == 1
        assert report.misses == 1
        assert report.failed == 0
        assert metrics.registry.get_sample_value("cidcache_warm_keys_total", {"outcome": "hit"}) == 1

    @pytest.mark.asyncio
    async def test_failing_key_does_not_abort_batch(self, engine):
        await engine.set("a", PAYLOAD)

        report = await engine.warm_cache(["bad key", "a"])

        assert report.failed == 1
        assert report.failed_keys == ["bad key"]
        assert report.hits == 1

    @pytest.mark.asyncio
    async def test_populates_local_store_from_durable(self, engine):
        await engine.set("a", PAYLOAD)
        await engine.local.clear()

        await engine.warm_cache(["a"])

        assert "a" in engine.local.keys()

    @pytest.mark.asyncio
    async def test_batches_are_throttled(self, engine):
        keys = [f"cid-{i}" for i in range(5)]

        started = time.monotonic()
        report = await engine.warm_cache(keys, batch_size=2, delay=0.05)
        elapsed = time.monotonic() - started

        assert report.requested == 5
        assert elapsed >= 0.1

    @pytest.mark.asyncio
    async def test_batch_concurrency_is_bounded(self, engine, monkeypatch):
        in_flight = 0
        peak = 0
        original_get = engine.get

        async def tracking_get(key):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await original_get(key)

        monkeypatch.setattr(engine, "get", tracking_get)

        await engine.warm_cache([f"cid-{i}" for i in range(7)], batch_size=3, delay=0)

        assert peak == 3

    @pytest.mark.asyncio
    async def test_warm_in_background(self, engine):
        await engine.set("a", PAYLOAD)

        task = engine.warm_in_background(["a"])
        report = await task

        await asyncio.sleep(0)

        assert report.hits == 1
        assert task not in engine._background


class TestPreload:
    @pytest.mark.asyncio
    async def test_samples_durable_keys(self, engine, fake_redis):
        for i in range(5):
            await engine.set(f"cid-{i}", PAYLOAD)
        await engine.local.clear()

        report = await engine.preload_popular_content(limit=3)

        assert report.requested == 3
        assert report.hits == 3
        assert len(engine.local) == 3

    @pytest.mark.asyncio
    async def test_pin_markers_are_not_sampled(self, engine):
        await engine.set("a", PAYLOAD)
        await engine.pin("a")

        report = await engine.preload_popular_content()

        assert report.requested == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_local_keys_when_degraded(self, engine, fake_redis):
        await engine.set("a", PAYLOAD)
        await engine.set("b", PAYLOAD)
        fake_redis.fail = True

        report = await engine.preload_popular_content(limit=5)

        assert report.requested == 2
        assert report.hits == 2
