"""Logging utilities for monitoring and debugging."""

from cidcache.core.logging.config import LogConfig
from cidcache.core.logging.logger import configure_logging, log_context, logger

__all__ = [
    "LogConfig",
    "configure_logging",
    "log_context",
    "logger",
]
