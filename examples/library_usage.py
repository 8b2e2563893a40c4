"""cidcache library usage example.

Runs against the Redis server from ``CIDCACHE_REDIS_URL`` when reachable and
falls back to the local store otherwise; the output shows which tier
answered.
"""

import asyncio

from loguru import logger

from cidcache import BlobPayload, CacheEngine, configure_logging, load_config_from_env
from cidcache.core.config import CidCacheConfig


async def main() -> None:
    configure_logging("INFO")
    config = CidCacheConfig.from_dict({"environment": "development", **load_config_from_env()})

    async with CacheEngine.from_config(config) as cache:
        health = await cache.health_check()
        logger.info(f"cache backend: {health.backend} ({health.status})")

        # the API layer calls set after fetching bytes from upstream on a miss
        cid = "bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku"
        if await cache.get(cid) is None:
            await cache.set(cid, BlobPayload(data=b"hello world", content_type="text/plain"), ttl=120)

        entry = await cache.get(cid)
        logger.info(f"{cid[:16]}... -> {entry.data!r} ({entry.size} bytes, {entry.content_type})")

        await cache.pin(cid)
        logger.info(f"pinned: {await cache.is_pinned(cid)}")

        report = await cache.warm_cache([cid, "bafy-not-cached"])
        logger.info(f"warm: {report.hits} hit(s), {report.misses} miss(es)")

        stats = await cache.get_stats()
        logger.info(f"stats: {stats.to_dict()}")
        logger.info(f"memory pressure: {await cache.memory_pressure():.2%}")


if __name__ == "__main__":
    asyncio.run(main())
