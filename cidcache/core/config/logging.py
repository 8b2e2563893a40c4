"""Logging configuration."""

from dataclasses import dataclass


@dataclass
class LoggingConfig:
    """Log level and optional JSON-lines log file."""

    level: str = "INFO"
    file: str | None = None

    def to_log_kwargs(self) -> dict[str, object]:
        """Keyword arguments for :func:`cidcache.core.logging.configure_logging`."""
        return {"file_output": self.file is not None, "file_path": self.file}
