"""Shared helpers for storage provider implementations."""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import TypeVar

from record_files.models import FileRecord, Permissions, TokenRequest
from record_files.protocols.container_resolver import ContainerNameResolver
from record_files.utils.validation import require_identifier, require_not_none

T = TypeVar("T")

# Validity window of every issued token, measured from issuance
TOKEN_VALIDITY = timedelta(hours=1)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default provider clock."""
    return datetime.now(timezone.utc)


def translate_permissions(
    permissions: Permissions,
    mapping: Sequence[tuple[Permissions, T]],
) -> list[T]:
    """Translate abstract permission bits to a backend's native grants.

    Bits with no entry in `mapping` are dropped: listing is served by
    the service itself, never through a signed token.

    Args:
        permissions: Requested abstract permissions
        mapping: Ordered (abstract bit, native grant) pairs

    Returns:
        Native grants in mapping order
    """
    return [native for abstract, native in mapping if (permissions & abstract) == abstract]


def require_token_target(
    request: TokenRequest | None,
    resolver: ContainerNameResolver | None,
) -> FileRecord:
    """Validate a token request before any backend call.

    Returns:
        The request's target file

    Raises:
        InvalidArgumentError: On a missing request, resolver or target identity
    """
    require_not_none(request, "request")
    require_not_none(resolver, "resolver")
    target = require_not_none(request.target_file, "request.target_file")
    require_identifier(target.table_name, "target_file.table_name")
    require_identifier(target.parent_id, "target_file.parent_id")
    require_identifier(target.name, "target_file.name")
    return target


def require_record(
    table_name: str,
    record_id: str,
    resolver: ContainerNameResolver | None,
) -> ContainerNameResolver:
    """Validate the record identity shared by list and delete."""
    require_identifier(table_name, "table_name")
    require_identifier(record_id, "record_id")
    return require_not_none(resolver, "resolver")
