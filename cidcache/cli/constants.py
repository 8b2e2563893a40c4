"""Exit codes shared by CLI commands."""

VALIDATION_EXIT_CODE = 10
NOT_FOUND_EXIT_CODE = 20
CACHE_EXIT_CODE = 30
SYSTEM_EXIT_CODE = 50

__all__ = ["CACHE_EXIT_CODE", "NOT_FOUND_EXIT_CODE", "SYSTEM_EXIT_CODE", "VALIDATION_EXIT_CODE"]
