"""Background reconnection polling while the durable store is degraded."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from loguru import logger

from cidcache.core.health.tracker import HealthTracker


class ReconnectMonitor:
    """Periodically probes the durable store while the tracker reports degraded."""

    def __init__(
        self,
        tracker: HealthTracker,
        probe: Callable[[], Awaitable[bool]],
        interval: float = 30.0,
    ):
        self.tracker = tracker
        self.probe = probe
        self.interval = interval
        self.attempts = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="cidcache-reconnect")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.tracker.is_ready:
                continue
            self.attempts += 1
            if await self.probe():
                logger.bind(backend="durable").info(
                    f"Reconnected to durable store after {self.attempts} probe(s)"
                )
                self.attempts = 0
