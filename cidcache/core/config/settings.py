"""Configuration management for cidcache."""

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from cidcache.core.config.cache import CacheConfig
from cidcache.core.config.durable import DurableStoreConfig
from cidcache.core.config.logging import LoggingConfig

# TTL / capacity presets per deployment environment
ENVIRONMENT_PROFILES: dict[str, dict[str, Any]] = {
    "development": {"default_ttl": 3600, "max_entries": 100},
    "staging": {"default_ttl": 7200, "max_entries": 500},
    "production": {"default_ttl": 86400, "max_entries": 10000},
    "test": {"default_ttl": 60, "max_entries": 10},
}


@dataclass
class CidCacheConfig:
    """Top level configuration."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    durable: DurableStoreConfig = field(default_factory=DurableStoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "CidCacheConfig":
        """Build a config from a nested mapping.

        An optional top level ``environment`` key seeds the cache section
        from :data:`ENVIRONMENT_PROFILES`; explicit cache values still win.
        """
        cache_values: dict[str, Any] = {}
        environment = config_dict.get("environment")
        if environment is not None:
            if environment not in ENVIRONMENT_PROFILES:
                raise ValueError(f"Unknown environment profile: {environment}")
            cache_values.update(ENVIRONMENT_PROFILES[environment])
        cache_values.update(config_dict.get("cache", {}))

        return cls(
            cache=CacheConfig(**cache_values),
            durable=DurableStoreConfig(**config_dict.get("durable", {})),
            logging=LoggingConfig(**config_dict.get("logging", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache": asdict(self.cache),
            "durable": asdict(self.durable),
            "logging": asdict(self.logging),
        }


class ConfigManager:
    """Loads configuration from a TOML file layered with environment overrides."""

    def __init__(self, config_path: Path | None = None, *, use_env: bool = True):
        """
        Args:
            config_path: TOML file, defaults to ``~/.cidcache/config.toml``
            use_env: apply ``CIDCACHE_*`` variables on top of the file
        """
        self.config_path = config_path or Path.home() / ".cidcache" / "config.toml"
        self.use_env = use_env
        self.config = self._load_config()

    def _load_config(self) -> CidCacheConfig:
        config_dict: dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    config_dict = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                config_dict = {}

        if self.use_env:
            _deep_update(config_dict, load_config_from_env())

        return CidCacheConfig.from_dict(config_dict)

    def get_config(self) -> CidCacheConfig:
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Merge nested updates into the current config."""
        config_dict = self.config.to_dict()
        _deep_update(config_dict, updates)
        self.config = CidCacheConfig.from_dict(config_dict)


def _deep_update(d: dict[str, Any], u: dict[str, Any]) -> dict[str, Any]:
    for k, v in u.items():
        if isinstance(v, dict):
            d[k] = _deep_update(d.get(k, {}), v)
        else:
            d[k] = v
    return d


def get_default_config() -> CidCacheConfig:
    return CidCacheConfig()


_ENV_FIELDS: dict[str, tuple[str, str, type]] = {
    "CIDCACHE_DEFAULT_TTL": ("cache", "default_ttl", int),
    "CIDCACHE_MAX_ENTRIES": ("cache", "max_entries", int),
    "CIDCACHE_SWEEP_INTERVAL": ("cache", "sweep_interval", float),
    "CIDCACHE_WARM_BATCH_SIZE": ("cache", "warm_batch_size", int),
    "CIDCACHE_PRESSURE_THRESHOLD": ("cache", "pressure_threshold", float),
    "CIDCACHE_REDIS_ENABLED": ("durable", "enabled", bool),
    "CIDCACHE_REDIS_URL": ("durable", "url", str),
    "CIDCACHE_REDIS_NAMESPACE": ("durable", "namespace", str),
    "CIDCACHE_REDIS_TIMEOUT": ("durable", "operation_timeout", float),
    "CIDCACHE_REDIS_CONNECT_TIMEOUT": ("durable", "connect_timeout", float),
    "CIDCACHE_REDIS_MAX_RETRIES": ("durable", "max_retries", int),
    "CIDCACHE_LOG_LEVEL": ("logging", "level", str),
    "CIDCACHE_LOG_FILE": ("logging", "file", str),
}


def load_config_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect ``CIDCACHE_*`` environment variables into a nested config dict."""
    env = os.environ if environ is None else environ
    config: dict[str, Any] = {}

    profile = env.get("CIDCACHE_ENV")
    if profile:
        config["environment"] = profile

    for name, (section, key, kind) in _ENV_FIELDS.items():
        raw = env.get(name)
        if raw is None:
            continue
        value: Any
        if kind is bool:
            value = raw.strip().lower() in {"1", "true", "yes", "on"}
        else:
            value = kind(raw)
        config.setdefault(section, {})[key] = value

    return config
