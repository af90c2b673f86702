"""ContainerNameResolver protocol for mapping records onto storage containers."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable


@runtime_checkable
class ContainerNameResolver(Protocol):
    """Maps (table, record, file) identities to backend container names.

    Implementations must be deterministic: identical inputs always address
    the same physical container.
    """

    def resolve_file_container(self, table_name: str, record_id: str, file_name: str) -> str:
        """Return the container holding a single file of a record."""
        ...

    def resolve_record_containers(self, table_name: str, record_id: str) -> Sequence[str]:
        """Return every container holding files of a record, in listing order."""
        ...
