"""Key validation and durable key naming."""

from __future__ import annotations

from dataclasses import dataclass

from cidcache.core.exceptions import InvalidKeyError

MAX_KEY_LENGTH = 512

BLOB_PREFIX = "blob:"
PIN_PREFIX = "pin:"


def validate_key(key: object) -> str:
    """Return ``key`` unchanged if it is a usable content identifier.

    Raises:
        InvalidKeyError: empty, non-string, too long or containing whitespace
    """
    if not isinstance(key, str):
        raise InvalidKeyError("Content identifier must be a string", key)
    if not key.strip():
        raise InvalidKeyError("Content identifier must not be empty", key)
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidKeyError(f"Content identifier longer than {MAX_KEY_LENGTH} characters", key)
    if any(ch.isspace() for ch in key):
        raise InvalidKeyError("Content identifier must not contain whitespace", key)
    return key


@dataclass(frozen=True)
class CacheKeyspace:
    """Maps content identifiers to durable store keys.

    Blobs live under ``{namespace}blob:{cid}``; pin markers under
    ``{namespace}pin:{cid}``.
    """

    namespace: str = ""

    def blob(self, cid: str) -> str:
        return f"{self.namespace}{BLOB_PREFIX}{cid}"

    def pin(self, cid: str) -> str:
        return f"{self.namespace}{PIN_PREFIX}{cid}"

    @property
    def blob_prefix(self) -> str:
        return f"{self.namespace}{BLOB_PREFIX}"

    @property
    def pin_prefix(self) -> str:
        return f"{self.namespace}{PIN_PREFIX}"

    def cid_from_blob(self, durable_key: str | bytes) -> str | None:
        if isinstance(durable_key, bytes):
            durable_key = durable_key.decode("utf-8", errors="replace")
        if not durable_key.startswith(self.blob_prefix):
            return None
        return durable_key[len(self.blob_prefix) :]

    def cid_from_pin(self, durable_key: str | bytes) -> str | None:
        if isinstance(durable_key, bytes):
            durable_key = durable_key.decode("utf-8", errors="replace")
        if not durable_key.startswith(self.pin_prefix):
            return None
        return durable_key[len(self.pin_prefix) :]
