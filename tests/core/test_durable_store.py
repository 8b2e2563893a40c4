"""Tests for the Redis durable store adapter, run against an in-memory fake client."""

import math

import pytest

from cidcache.core.cache import MemoryInfo, RedisDurableStore
from cidcache.core.cache.durable import _glob_escape
from cidcache.core.exceptions import DurableStoreUnavailableError


@pytest.fixture
def store(fake_redis):
    return RedisDurableStore(fake_redis, operation_timeout=0.1)


class TestRedisDurableStore:
    @pytest.mark.asyncio
    async def test_set_with_ttl_and_get(self, store, fake_redis):
        await store.set_with_ttl("blob:a", b"payload", 30)

        value, remaining = await store.get_with_ttl("blob:a")

        assert value == b"payload"
        assert 29 < remaining <= 30

    @pytest.mark.asyncio
    async def test_zero_ttl_means_no_expiry(self, store):
        await store.set_with_ttl("pin:a", "1", 0)

        value, remaining = await store.get_with_ttl("pin:a")

        assert value == b"1"
        assert remaining == math.inf

    @pytest.mark.asyncio
    async def test_missing_key(self, store):
        assert await store.get_with_ttl("blob:missing") == (None, 0.0)
        assert await store.get("blob:missing") is None
        assert await store.exists("blob:missing") is False

    @pytest.mark.asyncio
    async def test_persist_and_expire(self, store):
        await store.set_with_ttl("blob:a", b"x", 30)

        assert await store.persist("blob:a") is True
        assert (await store.ttls(["blob:a"]))["blob:a"] == math.inf

        assert await store.expire("blob:a", 10) is True
        assert (await store.ttls(["blob:a"]))["blob:a"] <= 10

    @pytest.mark.asyncio
    async def test_expire_zero_persists_instead_of_deleting(self, store, fake_redis):
        await store.set_with_ttl("blob:a", b"x", 30)

        await store.expire("blob:a", 0)

        assert await store.exists("blob:a") is True
        assert "persist" in fake_redis.commands

    @pytest.mark.asyncio
    async def test_ttls_omits_missing_keys(self, store):
        await store.set_with_ttl("blob:a", b"x", 30)

        ttls = await store.ttls(["blob:a", "blob:gone"])

        assert set(ttls) == {"blob:a"}

    @pytest.mark.asyncio
    async def test_delete_multiple_keys(self, store):
        await store.set_with_ttl("blob:a", b"x", 0)
        await store.set_with_ttl("pin:a", "1", 0)

        assert await store.delete("blob:a", "pin:a", "blob:none") == 2
        assert await store.delete() == 0

    @pytest.mark.asyncio
    async def test_keys_matching_prefix_and_limit(self, store):
        for i in range(5):
            await store.set_with_ttl(f"ns:blob:{i}", b"x", 0)
        await store.set_with_ttl("ns:pin:0", "1", 0)
        await store.set_with_ttl("other:blob:0", b"x", 0)

        keys = await store.keys_matching("ns:blob:")
        assert sorted(keys) == [f"ns:blob:{i}" for i in range(5)]

        assert len(await store.keys_matching("ns:blob:", limit=2)) == 2
        assert await store.count_matching("ns:blob:") == 5
        assert await store.count_matching("") == 7

    @pytest.mark.asyncio
    async def test_delete_matching_only_touches_prefix(self, store, fake_redis):
        await store.set_with_ttl("ns:blob:a", b"x", 0)
        await store.set_with_ttl("ns:blob:b", b"x", 0)
        await store.set_with_ttl("keep", b"x", 0)

        assert await store.delete_matching("ns:blob:") == 2
        assert list(fake_redis.data) == ["keep"]

    @pytest.mark.asyncio
    async def test_memory_info(self, store, fake_redis):
        fake_redis.used_memory = 512
        fake_redis.max_memory = 1024

        assert await store.memory_info() == MemoryInfo(used_bytes=512, max_bytes=1024)

    @pytest.mark.asyncio
    async def test_connection_errors_are_translated(self, store, fake_redis):
        fake_redis.fail = True

        with pytest.raises(DurableStoreUnavailableError) as exc_info:
            await store.get_with_ttl("blob:a")

        assert exc_info.value.operation == "get"
        assert exc_info.value.error_code == "DURABLE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_timeouts_are_translated(self, store, fake_redis):
        fake_redis.hang = True

        with pytest.raises(DurableStoreUnavailableError):
            await store.ping()

    @pytest.mark.asyncio
    async def test_scan_errors_are_translated(self, store, fake_redis):
        fake_redis.fail = True

        with pytest.raises(DurableStoreUnavailableError):
            await store.keys_matching("blob:")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self, store, fake_redis):
        await store.close()
        assert fake_redis.closed is False


def test_glob_escape():
    assert _glob_escape("ns*[x]?:") == "ns\\*\\[x\\]\\?:"
    assert _glob_escape("plain:") == "plain:"
