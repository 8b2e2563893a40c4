"""Resilience patterns module."""

from cidcache.core.patterns.degradation import DurableResult, with_degradation
from cidcache.core.patterns.retry import ExponentialBackoffRetry, RetryConfig, RetryState

__all__ = [
    "DurableResult",
    "ExponentialBackoffRetry",
    "RetryConfig",
    "RetryState",
    "with_degradation",
]
