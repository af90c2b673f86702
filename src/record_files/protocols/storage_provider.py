"""StorageProvider protocol for token-issuing storage backends."""

from typing import Protocol, runtime_checkable

from record_files.models import AccessToken, FileRecord, TokenRequest, TokenScope
from record_files.protocols.container_resolver import ContainerNameResolver


@runtime_checkable
class StorageProvider(Protocol):
    """Protocol for storage backends (Azure Blob Storage, local filesystem).

    A provider owns the translation from abstract permissions and scopes to
    its native signed-access mechanism, plus the list/delete operations that
    need backend connectivity.
    """

    name: str

    async def list_record_files(
        self,
        table_name: str,
        record_id: str,
        resolver: ContainerNameResolver,
    ) -> list[FileRecord]:
        """List the files of a record. A missing container yields no files."""
        ...

    async def delete_file(
        self,
        table_name: str,
        record_id: str,
        file_name: str,
        resolver: ContainerNameResolver,
    ) -> None:
        """Delete a file. No-op if the file doesn't exist."""
        ...

    async def issue_access_token(
        self,
        request: TokenRequest,
        scope: TokenScope,
        resolver: ContainerNameResolver,
    ) -> AccessToken:
        """Sign an expiring token for the request's target file or record."""
        ...
