"""Utility helpers shared across CLI commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import typer

from cidcache.core.config import CidCacheConfig, ConfigManager

from .formatters import OutputFormatter, create_formatter


@dataclass(slots=True)
class CLIOptions:
    """Resolved options derived from the Typer context."""

    format: str = "table"
    no_color: bool = False
    config_path: Path | None = None
    log_level: str | None = None


def get_cli_options(ctx: typer.Context) -> CLIOptions:
    """Extract :class:`CLIOptions` from the Typer context object."""

    ctx.ensure_object(dict)
    data = ctx.obj or {}
    return CLIOptions(
        format=str(data.get("format", "table")),
        no_color=bool(data.get("no_color", False)),
        config_path=data.get("config_path"),
        log_level=data.get("log_level"),
    )


def load_config(ctx: typer.Context) -> CidCacheConfig:
    """Load configuration from ``--config`` (or the default path) plus environment."""

    options = get_cli_options(ctx)
    return ConfigManager(options.config_path).get_config()


def prepare_output(ctx: typer.Context) -> tuple[OutputFormatter, TextIO]:
    """Resolve the formatter and writable stream for the current command."""

    options = get_cli_options(ctx)
    return create_formatter(options.format, no_color=options.no_color), sys.stdout


def render(ctx: typer.Context, rows: Sequence[Mapping[str, object]], columns: Sequence[str] | None = None) -> None:
    formatter, stream = prepare_output(ctx)
    formatter.render(rows, stream=stream, columns=columns)


def emit_error(message: str, code: str, *, details: Mapping[str, object] | None = None) -> None:
    """Print a structured error payload to stderr."""

    payload: dict[str, object] = {"code": code, "message": message}
    if details:
        payload["details"] = _sanitize_details(details)
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str), err=True)


def _sanitize_details(details: Mapping[str, object]) -> Mapping[str, object]:
    sanitized: dict[str, object] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            sanitized[key] = [str(item) for item in value]
        else:
            sanitized[key] = str(value)
    return sanitized


__all__ = ["CLIOptions", "emit_error", "get_cli_options", "load_config", "prepare_output", "render"]
