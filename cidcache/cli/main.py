"""Main entry point for the cidcache command line interface."""

from __future__ import annotations

from pathlib import Path

import typer

from cidcache.core.logging import configure_logging

from .commands import register as register_cache_commands
from .formatters import create_formatter


def create_app() -> typer.Typer:
    """Create a Typer application instance for cidcache."""

    app = typer.Typer(add_completion=False, help="cidcache maintenance command line interface")

    @app.callback()
    def main(
        ctx: typer.Context,
        config: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            help="TOML configuration file (default: ~/.cidcache/config.toml).",
        ),
        format: str = typer.Option(
            "table",
            "--format",
            "-f",
            help="Output format (table or json).",
            show_default=True,
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            help="Minimum level of log records written to stderr (default: from configuration).",
        ),
        no_color: bool = typer.Option(
            False,
            "--no-color",
            help="Disable colorized output for table format.",
        ),
    ) -> None:
        ctx.ensure_object(dict)
        normalized_format = format.strip().lower()
        try:
            create_formatter(normalized_format, no_color=no_color)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--format") from exc

        ctx.obj.update(
            {
                "format": normalized_format,
                "config_path": config,
                "log_level": log_level.upper() if log_level else None,
                "no_color": no_color,
            }
        )
        configure_logging(log_level.upper() if log_level else "WARNING")

    register_cache_commands(app)
    return app


app = create_app()


def run() -> None:
    app()


if __name__ == "__main__":
    run()
