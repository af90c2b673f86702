"""Storage provider implementations."""

from record_files.backends.base import TOKEN_VALIDITY

__all__ = ["TOKEN_VALIDITY"]
