"""Statistics, health and warm-up result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

BackendName = Literal["durable", "local"]
HealthState = Literal["healthy", "degraded"]


class LocalStoreStats(BaseModel):
    entries: int = 0
    capacity: int = 0
    pinned: int = 0  # resident pinned entries
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class DurableStoreStats(BaseModel):
    """Zeroed when the durable store is unreachable."""

    reachable: bool = False
    keys: int = 0
    used_memory: int = 0
    max_memory: int = 0


class CacheStats(BaseModel):
    """Aggregate snapshot returned by ``CacheEngine.get_stats``."""

    local: LocalStoreStats
    durable: DurableStoreStats = Field(default_factory=DurableStoreStats)
    backend: BackendName = "local"
    durable_state: str = "degraded"
    durable_hits: int = 0
    local_hits: int = 0
    misses: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump()
        data["local"]["hit_rate"] = round(self.local.hit_rate, 4)
        return data


@dataclass
class CacheHealth:
    """Health result used for liveness and readiness reporting."""

    status: HealthState
    backend: BackendName
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "backend": self.backend,
            "checked_at": self.checked_at.isoformat(),
            "details": self.details,
        }


@dataclass
class WarmReport:
    """Outcome counts of a cache warm-up run."""

    requested: int = 0
    hits: int = 0
    misses: int = 0
    failed: int = 0
    failed_keys: list[str] = field(default_factory=list)

    def merge(self, other: WarmReport) -> WarmReport:
        return WarmReport(
            requested=self.requested + other.requested,
            hits=self.hits + other.hits,
            misses=self.misses + other.misses,
            failed=self.failed + other.failed,
            failed_keys=[*self.failed_keys, *other.failed_keys],
        )
