"""Cache maintenance commands."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import TypeVar

import typer

from cidcache.core.cache import CacheEngine
from cidcache.core.config import CidCacheConfig
from cidcache.core.exceptions import CidCacheError, InvalidInputError, LocalStoreError
from cidcache.core.logging import configure_logging, log_context
from cidcache.core.models import DEFAULT_CONTENT_TYPE, BlobPayload, CacheEntry, WarmReport

from .constants import CACHE_EXIT_CODE, NOT_FOUND_EXIT_CODE, SYSTEM_EXIT_CODE, VALIDATION_EXIT_CODE
from .utils import emit_error, get_cli_options, load_config, render

T = TypeVar("T")

ENTRY_COLUMNS = ["key", "content_type", "size", "ttl_seconds", "cached_at"]
WARM_COLUMNS = ["requested", "hits", "misses", "failed", "failed_keys"]


def get_engine(config: CidCacheConfig) -> CacheEngine:
    """Factory hook returning the engine a command operates on."""

    return CacheEngine.from_config(config)


def _run(ctx: typer.Context, operation: Callable[[CacheEngine], Awaitable[T]]) -> T:
    try:
        config = load_config(ctx)
    except (TypeError, ValueError) as exc:
        emit_error(f"Invalid configuration: {exc}", "INVALID_CONFIG")
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

    options = get_cli_options(ctx)
    configure_logging(options.log_level or config.logging.level, **config.logging.to_log_kwargs())
    engine = get_engine(config)

    async def _runner() -> T:
        async with engine:
            return await operation(engine)

    try:
        with log_context(command=ctx.info_name):
            return asyncio.run(_runner())
    except InvalidInputError as error:
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from error
    except LocalStoreError as error:
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=CACHE_EXIT_CODE) from error
    except CidCacheError as error:
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=SYSTEM_EXIT_CODE) from error


def _entry_row(entry: CacheEntry) -> Mapping[str, object]:
    return {
        "key": entry.key,
        "content_type": entry.content_type,
        "size": entry.size,
        "ttl_seconds": entry.ttl_seconds,
        "cached_at": entry.cached_at.isoformat(),
    }


def _warm_row(report: WarmReport) -> Mapping[str, object]:
    return {
        "requested": report.requested,
        "hits": report.hits,
        "misses": report.misses,
        "failed": report.failed,
        "failed_keys": ",".join(report.failed_keys),
    }


def _flatten(prefix: str, data: Mapping[str, object]) -> list[Mapping[str, object]]:
    rows: list[Mapping[str, object]] = []
    for name, value in data.items():
        metric = f"{prefix}{name}"
        if isinstance(value, Mapping):
            rows.extend(_flatten(f"{metric}.", value))
        else:
            rows.append({"metric": metric, "value": value})
    return rows


def health_command(ctx: typer.Context) -> None:
    """Probe the durable store and report readiness."""

    health = _run(ctx, lambda engine: engine.health_check())
    render(ctx, [{"status": health.status, "backend": health.backend, "checked_at": health.checked_at.isoformat()}])


def stats_command(ctx: typer.Context) -> None:
    """Show hit/miss counters and durable store usage."""

    stats = _run(ctx, lambda engine: engine.get_stats())
    render(ctx, _flatten("", stats.to_dict()), columns=["metric", "value"])


def get_command(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Content identifier."),
    raw: bool = typer.Option(False, "--raw", help="Write the blob bytes to stdout instead of metadata."),
) -> None:
    """Look up a cached blob."""

    entry = _run(ctx, lambda engine: engine.get(key))
    if entry is None:
        emit_error(f"'{key}' is not cached", "NOT_FOUND", details={"key": key})
        raise typer.Exit(code=NOT_FOUND_EXIT_CODE)
    if raw:
        sys.stdout.buffer.write(entry.data)
        sys.stdout.flush()
        return
    render(ctx, [_entry_row(entry)], columns=ENTRY_COLUMNS)


def put_command(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Content identifier."),
    data: str | None = typer.Option(None, "--data", "-d", help="Inline text payload."),
    file: Path | None = typer.Option(None, "--file", help="Read the payload from a file."),
    content_type: str = typer.Option(DEFAULT_CONTENT_TYPE, "--content-type", "-t", help="Payload content type."),
    ttl: int | None = typer.Option(None, "--ttl", help="Seconds to live; 0 disables expiry."),
) -> None:
    """Store a blob in both cache tiers."""

    if (data is None) == (file is None):
        emit_error("Exactly one of --data or --file is required.", "INVALID_PAYLOAD")
        raise typer.Exit(code=VALIDATION_EXIT_CODE)

    if file is not None:
        try:
            body = file.read_bytes()
        except OSError as exc:
            emit_error(f"Unable to read '{file}': {exc}", "INVALID_PAYLOAD")
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc
    else:
        body = data.encode("utf-8")

    payload = BlobPayload(data=body, content_type=content_type)
    entry = _run(ctx, lambda engine: engine.set(key, payload, ttl))
    render(ctx, [_entry_row(entry)], columns=ENTRY_COLUMNS)


def pin_command(ctx: typer.Context, key: str = typer.Argument(..., help="Content identifier.")) -> None:
    """Exempt a cached blob from expiry and eviction."""

    pinned = _run(ctx, lambda engine: engine.pin(key))
    if not pinned:
        emit_error(f"'{key}' is not cached; nothing pinned", "NOT_FOUND", details={"key": key})
        raise typer.Exit(code=NOT_FOUND_EXIT_CODE)
    render(ctx, [{"key": key, "pinned": True}])


def unpin_command(ctx: typer.Context, key: str = typer.Argument(..., help="Content identifier.")) -> None:
    """Return a blob to the default TTL lifecycle."""

    was_pinned = _run(ctx, lambda engine: engine.unpin(key))
    render(ctx, [{"key": key, "pinned": False, "was_pinned": was_pinned}])


def delete_command(ctx: typer.Context, key: str = typer.Argument(..., help="Content identifier.")) -> None:
    """Remove a blob and its pin marker from both tiers."""

    removed = _run(ctx, lambda engine: engine.delete(key))
    render(ctx, [{"key": key, "removed": removed}])


def clear_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Remove every cached blob and pin marker."""

    if not yes:
        typer.confirm("Remove every cached entry from both tiers?", abort=True)
    _run(ctx, lambda engine: engine.clear())
    render(ctx, [{"cleared": True}])


def warm_command(
    ctx: typer.Context,
    keys: list[str] = typer.Argument(..., help="Content identifiers to warm."),
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Keys fetched concurrently per batch."),
) -> None:
    """Fetch keys in throttled batches to populate the local tier."""

    report = _run(ctx, lambda engine: engine.warm_cache(keys, batch_size=batch_size))
    render(ctx, [_warm_row(report)], columns=WARM_COLUMNS)


def preload_command(
    ctx: typer.Context,
    limit: int | None = typer.Option(None, "--limit", min=1, help="Maximum number of keys to warm."),
) -> None:
    """Warm a sample of keys already known to the cache."""

    report = _run(ctx, lambda engine: engine.preload_popular_content(limit))
    render(ctx, [_warm_row(report)], columns=WARM_COLUMNS)


def evict_command(
    ctx: typer.Context,
    count: int = typer.Argument(..., help="Maximum number of entries to evict."),
) -> None:
    """Evict unpinned entries with the least remaining TTL."""

    evicted = _run(ctx, lambda engine: engine.evict_least_used(count))
    render(ctx, [{"key": key} for key in evicted], columns=["key"])


def pressure_command(ctx: typer.Context) -> None:
    """Report the current memory pressure ratio."""

    async def _pressure(engine: CacheEngine) -> Mapping[str, object]:
        ratio = await engine.memory_pressure()
        return {
            "pressure": round(ratio, 4),
            "threshold": engine.config.cache.pressure_threshold,
            "backend": engine.backend,
        }

    render(ctx, [_run(ctx, _pressure)])


def register(app: typer.Typer) -> None:
    """Register cache commands on the root CLI application."""

    app.command("health")(health_command)
    app.command("stats")(stats_command)
    app.command("get")(get_command)
    app.command("put")(put_command)
    app.command("pin")(pin_command)
    app.command("unpin")(unpin_command)
    app.command("delete")(delete_command)
    app.command("clear")(clear_command)
    app.command("warm")(warm_command)
    app.command("preload")(preload_command)
    app.command("evict")(evict_command)
    app.command("pressure")(pressure_command)


__all__ = ["ENTRY_COLUMNS", "WARM_COLUMNS", "get_engine", "register"]
