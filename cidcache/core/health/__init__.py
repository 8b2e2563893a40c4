"""Durable store health tracking."""

from cidcache.core.health.monitor import ReconnectMonitor
from cidcache.core.health.tracker import DurableState, HealthTracker

__all__ = ["DurableState", "HealthTracker", "ReconnectMonitor"]
