"""Configuration management module."""

from cidcache.core.config.cache import CacheConfig
from cidcache.core.config.durable import DurableStoreConfig
from cidcache.core.config.logging import LoggingConfig
from cidcache.core.config.settings import (
    ENVIRONMENT_PROFILES,
    CidCacheConfig,
    ConfigManager,
    get_default_config,
    load_config_from_env,
)

__all__ = [
    "CacheConfig",
    "CidCacheConfig",
    "ConfigManager",
    "DurableStoreConfig",
    "ENVIRONMENT_PROFILES",
    "LoggingConfig",
    "get_default_config",
    "load_config_from_env",
]
