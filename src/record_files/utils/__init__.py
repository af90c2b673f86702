"""Utility modules."""

from record_files.utils.validation import require_identifier, require_not_none

__all__ = ["require_identifier", "require_not_none"]
