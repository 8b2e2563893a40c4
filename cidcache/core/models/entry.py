"""Cache entry models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _coerce_bytes(value: Any) -> Any:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


class BlobPayload(BaseModel):
    """Bytes handed to the cache by the caller after an upstream fetch."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    content_type: str = Field(
        default=DEFAULT_CONTENT_TYPE,
        validation_alias=AliasChoices("content_type", "contentType"),
    )

    @field_validator("data", mode="before")
    @classmethod
    def _encode_text(cls, value: Any) -> Any:
        return _coerce_bytes(value)


class CacheEntry(BaseModel):
    """One cached blob.

    ``ttl_seconds`` is the time-to-live applied when the entry was written;
    ``0`` means the entry never expires on its own.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    size: int = Field(default=-1)
    cached_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ttl_seconds: int = Field(default=0, ge=0)

    @field_validator("data", mode="before")
    @classmethod
    def _encode_text(cls, value: Any) -> Any:
        return _coerce_bytes(value)

    @model_validator(mode="before")
    @classmethod
    def _derive_size(cls, values: Any) -> Any:
        if isinstance(values, dict) and values.get("size") in (None, -1) and "data" in values:
            values = {**values, "size": len(_coerce_bytes(values["data"]))}
        return values

    @field_validator("size")
    @classmethod
    def _non_negative_size(cls, value: int) -> int:
        if value < 0:
            raise ValueError("size must be >= 0")
        return value

    @classmethod
    def from_payload(cls, key: str, payload: BlobPayload, ttl_seconds: int, *, now: datetime | None = None) -> CacheEntry:
        return cls(
            key=key,
            data=payload.data,
            content_type=payload.content_type,
            size=len(payload.data),
            cached_at=now or datetime.now(timezone.utc),
            ttl_seconds=ttl_seconds,
        )

    @property
    def payload(self) -> BlobPayload:
        return BlobPayload(data=self.data, content_type=self.content_type)

    @property
    def expires_at(self) -> datetime | None:
        if self.ttl_seconds == 0:
            return None
        return self.cached_at + timedelta(seconds=self.ttl_seconds)

    def remaining_ttl(self, now: datetime | None = None) -> float | None:
        """Seconds until expiry, ``None`` for entries without a TTL."""
        expires_at = self.expires_at
        if expires_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (expires_at - now).total_seconds()

    def is_expired(self, now: datetime | None = None) -> bool:
        remaining = self.remaining_ttl(now)
        return remaining is not None and remaining <= 0
