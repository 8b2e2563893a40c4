"""Exponential backoff retry used for durable store connection attempts."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from cidcache.core.exceptions import DurableStoreUnavailableError

T = TypeVar("T")


class RetryState(Enum):
    """Retry state."""

    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RetryConfig:
    """Retry configuration."""

    max_attempts: int = 2  # first try plus retries
    base_delay: float = 0.1  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    retry_on_exceptions: list[type] = field(default_factory=lambda: [DurableStoreUnavailableError])


class ExponentialBackoffRetry:
    """Exponential backoff retry."""

    def __init__(self, config: RetryConfig):
        self.config = config
        self.attempt_count = 0
        self.total_delay = 0.0
        self.state = RetryState.READY
        self.last_exception: Exception | None = None

    async def execute(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` until it succeeds or attempts run out.

        Raises:
            Exception: the last error once all attempts failed, or immediately
                for exceptions not listed in ``retry_on_exceptions``
        """
        self.state = RetryState.RUNNING
        self.attempt_count = 0
        self.total_delay = 0.0

        while True:
            try:
                self.attempt_count += 1
                result = await func(*args, **kwargs)
                self.state = RetryState.COMPLETED
                return result
            except Exception as e:
                self.last_exception = e
                should_retry = any(isinstance(e, exc_type) for exc_type in self.config.retry_on_exceptions)
                if not should_retry or self.attempt_count >= self.config.max_attempts:
                    self.state = RetryState.FAILED
                    raise

                delay = self._calculate_delay(self.attempt_count - 1)
                await asyncio.sleep(delay)
                self.total_delay += delay

    def _calculate_delay(self, attempt_number: int) -> float:
        if attempt_number < 0:
            return 0.0

        delay = self.config.base_delay * (self.config.exponential_base**attempt_number)

        if self.config.jitter:
            jitter_range = min(delay * 0.1, 1.0)  # at most 10%
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, min(delay, self.config.max_delay))

    def get_stats(self) -> dict[str, Any]:
        return {
            "attempts": self.attempt_count,
            "max_attempts": self.config.max_attempts,
            "total_delay": self.total_delay,
            "state": self.state.value,
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }
