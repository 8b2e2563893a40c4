"""cidcache core exception classes."""

from typing import Any


class CidCacheError(Exception):
    """Base exception for cidcache."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        """Initialise the exception.

        Args:
            message: Human readable message
            error_code: Stable machine readable code
            details: Extra context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error_code": self.error_code, "message": self.message, "details": self.details}


class CacheError(CidCacheError):
    """Cache related failure."""

    def __init__(
        self,
        message: str,
        cache_type: str | None = None,
        error_code: str = "CACHE_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if cache_type:
            super_details["cache_type"] = cache_type
        super().__init__(message, error_code, super_details)
        self.cache_type = cache_type


class InvalidInputError(CidCacheError):
    """Caller supplied an argument the engine rejects."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if field:
            super_details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", super_details)
        self.field = field


class InvalidKeyError(InvalidInputError):
    """Content identifier is empty or malformed."""

    def __init__(self, message: str, key: object = None):
        super().__init__(message, field="key", details={"key": repr(key)})
        self.key = key


class LocalStoreError(CacheError):
    """The in-process store failed. Treated as fatal."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, cache_type="local", error_code="LOCAL_STORE_ERROR", details=details)


class DurableStoreError(CacheError):
    """The durable key/value backend failed."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        error_code: str = "DURABLE_STORE_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if operation:
            super_details["operation"] = operation
        super().__init__(message, cache_type="durable", error_code=error_code, details=super_details)
        self.operation = operation


class DurableStoreUnavailableError(DurableStoreError):
    """Connection refused, timed out or dropped while talking to the durable backend."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, operation, "DURABLE_UNAVAILABLE", details)
