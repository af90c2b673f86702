"""Protocol interfaces for pluggable collaborators."""

from record_files.protocols.container_resolver import ContainerNameResolver
from record_files.protocols.scope_policy import ScopePolicy
from record_files.protocols.storage_provider import StorageProvider

__all__ = [
    "ContainerNameResolver",
    "ScopePolicy",
    "StorageProvider",
]
