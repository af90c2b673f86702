"""Input validation utilities."""

from typing import Any, TypeVar

from record_files.exceptions import InvalidArgumentError

T = TypeVar("T")


def require_identifier(value: Any, name: str = "identifier") -> str:
    """Validate that an identifier is a non-empty string.

    Container names are derived from table and record identifiers, so a
    missing identifier must fail before it reaches the storage backend.

    Args:
        value: The identifier to validate
        name: Name of the field for error messages

    Returns:
        The validated identifier

    Raises:
        InvalidArgumentError: If the identifier is missing, empty or not a string
    """
    if value is None:
        raise InvalidArgumentError(f"{name} may not be null")

    if not isinstance(value, str):
        raise InvalidArgumentError(f"{name} must be a string")

    if not value.strip():
        raise InvalidArgumentError(f"{name} may not be empty")

    return value


def require_not_none(value: T | None, name: str) -> T:
    """Validate that a collaborator or argument was supplied."""
    if value is None:
        raise InvalidArgumentError(f"{name} may not be null")
    return value
