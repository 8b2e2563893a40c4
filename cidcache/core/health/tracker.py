"""Durable backend reachability tracking.

The tracker is a two-state machine, ``READY`` and ``DEGRADED``. Any failed
durable call moves it to ``DEGRADED``; only a successful liveness probe moves
it back to ``READY``.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from loguru import logger


class DurableState(Enum):
    """Durable backend state."""

    READY = "ready"
    DEGRADED = "degraded"


StateListener = Callable[[DurableState, DurableState], None]


class HealthTracker:
    """Records whether the durable store is currently usable."""

    def __init__(self, initial: DurableState = DurableState.DEGRADED):
        self._state = initial
        self._lock = threading.Lock()
        self._listeners: list[StateListener] = []
        self.last_error: str | None = None
        self.last_failed_operation: str | None = None
        self.failure_count = 0
        self.transitions = 0
        self.changed_at = time.time()

    @property
    def state(self) -> DurableState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is DurableState.READY

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with ``(old, new)`` on every transition."""
        self._listeners.append(listener)

    def mark_degraded(self, operation: str, error: BaseException | None = None) -> bool:
        """Record a durable failure. Returns True when this caused a transition."""
        with self._lock:
            self.failure_count += 1
            self.last_failed_operation = operation
            self.last_error = str(error) if error is not None else None
            previous = self._state
            if previous is DurableState.DEGRADED:
                return False
            self._state = DurableState.DEGRADED
            self.transitions += 1
            self.changed_at = time.time()

        logger.bind(backend="durable").warning(
            f"Durable store degraded after '{operation}' failure; serving from local store"
        )
        self._notify(previous, DurableState.DEGRADED)
        return True

    def mark_ready(self) -> bool:
        """Record a successful liveness probe. Returns True when this caused a transition."""
        with self._lock:
            previous = self._state
            if previous is DurableState.READY:
                return False
            self._state = DurableState.READY
            self.transitions += 1
            self.changed_at = time.time()

        logger.bind(backend="durable").info("Durable store reachable; leaving degraded mode")
        self._notify(previous, DurableState.READY)
        return True

    def _notify(self, old: DurableState, new: DurableState) -> None:
        for listener in list(self._listeners):
            listener(old, new)

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "since": self.changed_at,
            "failure_count": self.failure_count,
            "transitions": self.transitions,
            "last_error": self.last_error,
            "last_failed_operation": self.last_failed_operation,
        }
