"""Degrade-and-continue wrapper for durable store calls."""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from loguru import logger

from cidcache.core.exceptions import DurableStoreError

T = TypeVar("T")


@dataclass(frozen=True)
class DurableResult(Generic[T]):
    """Outcome of a guarded durable call.

    ``ok`` is False when the call failed or was skipped because the store was
    already degraded; ``value`` then holds the supplied default.
    """

    value: T
    ok: bool = True
    skipped: bool = False
    error: DurableStoreError | None = None

    @classmethod
    def success(cls, value: T) -> DurableResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, value: T, error: DurableStoreError) -> DurableResult[T]:
        return cls(value=value, ok=False, error=error)

    @classmethod
    def skip(cls, value: T) -> DurableResult[T]:
        return cls(value=value, ok=False, skipped=True)


def with_degradation(
    operation: str,
    default: Any = None,
    default_factory: Callable[[], Any] | None = None,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[DurableResult[Any]]]]:
    """Wrap an async method of an object exposing ``tracker`` and ``metrics``.

    The call is skipped while ``tracker`` is degraded. A
    :class:`DurableStoreError` is logged, marks the tracker degraded and is
    turned into a failed :class:`DurableResult`; it never reaches the caller.
    """

    def _default() -> Any:
        return default_factory() if default_factory is not None else default

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[DurableResult[Any]]]:
        @functools.wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> DurableResult[Any]:
            if not self.tracker.is_ready:
                return DurableResult.skip(_default())
            try:
                value = await func(self, *args, **kwargs)
            except DurableStoreError as exc:
                logger.bind(backend="durable", error_code=exc.error_code).warning(
                    f"Durable {operation} failed: {exc.message}"
                )
                self.tracker.mark_degraded(operation, exc)
                if self.metrics is not None:
                    self.metrics.record_durable_failure(operation)
                return DurableResult.failure(_default(), exc)
            return DurableResult.success(value)

        return wrapper

    return decorator
