"""Pytest configuration and shared fixtures for the cidcache test suite."""

from __future__ import annotations

import asyncio
import fnmatch
import time
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry
from redis.exceptions import ConnectionError as RedisConnectionError

from cidcache.core.cache import CacheEngine, LocalStore, RedisDurableStore
from cidcache.core.config import CacheConfig, CidCacheConfig, DurableStoreConfig
from cidcache.core.health import HealthTracker
from cidcache.core.monitoring import MetricsCollector


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--cidcache-run-integration",
        action="store_true",
        default=False,
        help="Run cidcache integration tests that require a Redis server.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the integration marker for cidcache tests."""

    config.addinivalue_line(
        "markers",
        "integration: marks cidcache tests requiring a running Redis server",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--cidcache-run-integration"):
        return

    cidcache_skip_integration = pytest.mark.skip(
        reason="integration tests require --cidcache-run-integration",
    )
    for cidcache_item in items:
        if "integration" in cidcache_item.keywords:
            cidcache_item.add_marker(cidcache_skip_integration)


class FakePipeline:
    """Queues commands and replays them against :class:`FakeRedis` on ``execute``."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._commands: list[tuple[str, tuple[Any, ...]]] = []

    async def __aenter__(self) -> FakePipeline:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._commands.clear()

    def get(self, key: str) -> FakePipeline:
        self._commands.append(("get", (key,)))
        return self

    def pttl(self, key: str) -> FakePipeline:
        self._commands.append(("pttl", (key,)))
        return self

    async def execute(self) -> list[Any]:
        commands, self._commands = self._commands, []
        return [await getattr(self._redis, name)(*args) for name, args in commands]


class FakeRedis:
    """In-memory stand-in for the subset of ``redis.asyncio.Redis`` the durable store uses.

    ``fail`` makes every command raise a connection error; ``hang`` makes
    every command sleep long enough to hit the caller's timeout.
    """

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.deadlines: dict[str, float] = {}
        self.fail = False
        self.hang = False
        self.used_memory = 0
        self.max_memory = 0
        self.commands: list[str] = []
        self.closed = False

    async def _command(self, name: str) -> None:
        self.commands.append(name)
        if self.hang:
            await asyncio.sleep(10)
        if self.fail:
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    def _alive(self, key: str) -> bool:
        deadline = self.deadlines.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self.deadlines.pop(key, None)
        return key in self.data

    async def ping(self) -> bool:
        await self._command("ping")
        return True

    async def get(self, key: str) -> bytes | None:
        await self._command("get")
        return self.data[key] if self._alive(key) else None

    async def set(self, key: str, value: str | bytes, ex: int | None = None) -> bool:
        await self._command("set")
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        if ex:
            self.deadlines[key] = time.monotonic() + ex
        else:
            self.deadlines.pop(key, None)
        return True

    async def exists(self, *keys: str) -> int:
        await self._command("exists")
        return sum(1 for key in keys if self._alive(key))

    async def delete(self, *keys: str) -> int:
        await self._command("delete")
        removed = 0
        for key in keys:
            if self._alive(key):
                del self.data[key]
                self.deadlines.pop(key, None)
                removed += 1
        return removed

    async def persist(self, key: str) -> bool:
        await self._command("persist")
        return self._alive(key) and self.deadlines.pop(key, None) is not None

    async def expire(self, key: str, seconds: int) -> bool:
        await self._command("expire")
        if not self._alive(key):
            return False
        self.deadlines[key] = time.monotonic() + seconds
        return True

    async def pttl(self, key: str) -> int:
        await self._command("pttl")
        if not self._alive(key):
            return -2
        deadline = self.deadlines.get(key)
        if deadline is None:
            return -1
        return max(0, int((deadline - time.monotonic()) * 1000))

    async def scan_iter(self, match: str | None = None, count: int | None = None) -> AsyncIterator[bytes]:
        await self._command("scan")
        for key in list(self.data):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key.encode("utf-8")

    async def dbsize(self) -> int:
        await self._command("dbsize")
        return sum(1 for key in list(self.data) if self._alive(key))

    async def info(self, section: str | None = None) -> dict[str, Any]:
        await self._command("info")
        return {"used_memory": self.used_memory, "maxmemory": self.max_memory}

    async def aclose(self) -> None:
        self.closed = True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def cache_config() -> CidCacheConfig:
    """Small, fast configuration without background sweeping."""
    return CidCacheConfig(
        cache=CacheConfig(
            default_ttl=60,
            max_entries=100,
            sweep_interval=0,
            warm_batch_delay=0,
        ),
        durable=DurableStoreConfig(
            operation_timeout=0.2,
            connect_timeout=0.2,
            max_retries=0,
            retry_base_delay=0.01,
            reconnect_interval=60.0,
        ),
    )


EngineFactory = Callable[..., Awaitable[CacheEngine]]


@pytest_asyncio.fixture
async def make_engine(
    fake_redis: FakeRedis,
    metrics: MetricsCollector,
    cache_config: CidCacheConfig,
) -> AsyncGenerator[EngineFactory, None]:
    """Build initialised engines backed by ``fake_redis``; destroyed at teardown."""

    engines: list[CacheEngine] = []

    async def _make(
        config: CidCacheConfig | None = None,
        *,
        durable: bool = True,
        local: LocalStore | None = None,
    ) -> CacheEngine:
        config = config or cache_config
        engine = CacheEngine(
            config,
            durable=RedisDurableStore(fake_redis, operation_timeout=config.durable.operation_timeout)
            if durable
            else None,
            local=local,
            tracker=HealthTracker(),
            metrics=metrics,
        )
        await engine.initialize()
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        await engine.destroy()


@pytest_asyncio.fixture
async def engine(make_engine: EngineFactory) -> CacheEngine:
    """Engine with a healthy fake durable store."""
    return await make_engine()


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[bool]]:
    return wait_for_condition
