"""Durable wire format for cache entries."""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime

from cidcache.core.exceptions import CacheError
from cidcache.core.models import CacheEntry

FORMAT_VERSION = 1


def encode_entry(entry: CacheEntry) -> str:
    """Serialise an entry to a JSON document with base64 payload bytes."""
    return json.dumps(
        {
            "v": FORMAT_VERSION,
            "key": entry.key,
            "data": base64.b64encode(entry.data).decode("ascii"),
            "content_type": entry.content_type,
            "size": entry.size,
            "cached_at": entry.cached_at.isoformat(),
            "ttl_seconds": entry.ttl_seconds,
        },
        ensure_ascii=True,
    )


def decode_entry(raw: str | bytes) -> CacheEntry:
    """Parse a stored document.

    Raises:
        CacheError: with code ``CORRUPT_ENTRY`` if the document is unreadable
    """
    try:
        row = json.loads(raw)
        return CacheEntry(
            key=row["key"],
            data=base64.b64decode(row["data"], validate=True),
            content_type=row.get("content_type") or "application/octet-stream",
            size=row.get("size"),
            cached_at=datetime.fromisoformat(row["cached_at"]),
            ttl_seconds=int(row.get("ttl_seconds") or 0),
        )
    except (ValueError, KeyError, TypeError, binascii.Error) as exc:
        raise CacheError(
            f"Unreadable cache entry: {exc}",
            cache_type="durable",
            error_code="CORRUPT_ENTRY",
        ) from exc
