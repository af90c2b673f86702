"""Azure Blob Storage provider.

Containers map to blob containers, files to block blobs, and tokens to
shared access signatures (SAS) signed with the account key.
"""

from datetime import timedelta
from typing import Any
from urllib.parse import unquote, urlparse

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import (
    BlobSasPermissions,
    ContainerSasPermissions,
    generate_blob_sas,
    generate_container_sas,
)
from azure.storage.blob.aio import BlobServiceClient, ContainerClient

from record_files.backends.base import (
    TOKEN_VALIDITY,
    Clock,
    require_record,
    require_token_target,
    translate_permissions,
    utc_now,
)
from record_files.exceptions import ConfigError, InvalidArgumentError
from record_files.models import AccessToken, FileRecord, Permissions, TokenRequest, TokenScope
from record_files.observability import get_logger
from record_files.protocols.container_resolver import ContainerNameResolver
from record_files.utils.validation import require_identifier

logger = get_logger(__name__)

# Abstract permission -> SAS permission keyword. LIST has no entry.
PERMISSION_MAP: tuple[tuple[Permissions, str], ...] = (
    (Permissions.READ, "read"),
    (Permissions.WRITE, "write"),
    (Permissions.DELETE, "delete"),
)


class AzureBlobStorageProvider:
    """Storage provider backed by an Azure Storage account.

    Containers are created on demand when a token is issued, since a client
    cannot upload into a container that does not exist yet. Listing and
    deleting never create containers.
    """

    name = "Microsoft Azure Blob Storage"

    def __init__(
        self,
        connection_string: str | None = None,
        clock: Clock | None = None,
        token_validity: timedelta = TOKEN_VALIDITY,
        **kwargs: Any,
    ) -> None:
        """Initialize the provider.

        Args:
            connection_string: Storage account connection string; must carry
                an AccountKey so that SAS tokens can be signed
            clock: Returns the current UTC time (injected in tests)
            token_validity: Lifetime of issued tokens
            **kwargs: Ignored (for compatibility with other providers)

        Raises:
            ConfigError: If the connection string is missing or cannot sign
        """
        if not connection_string:
            raise ConfigError("AzureBlobStorageProvider requires a connection string")

        try:
            self._service = BlobServiceClient.from_connection_string(connection_string)
        except ValueError as e:
            raise ConfigError(f"Invalid storage connection string: {e}") from e

        account_key = getattr(self._service.credential, "account_key", None)
        if not account_key:
            raise ConfigError(
                "Storage connection string must include an AccountKey to sign access tokens"
            )

        self.account_name: str = self._service.account_name
        self._account_key: str = account_key
        self._clock = clock or utc_now
        self.token_validity = token_validity
        self._closed = False

    async def close(self) -> None:
        """Close the underlying client session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._service.close()

    async def __aenter__(self) -> "AzureBlobStorageProvider":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def list_record_files(
        self,
        table_name: str,
        record_id: str,
        resolver: ContainerNameResolver,
    ) -> list[FileRecord]:
        resolver = require_record(table_name, record_id, resolver)

        files: list[FileRecord] = []
        for container_name in resolver.resolve_record_containers(table_name, record_id):
            container = self._container(container_name)
            blobs = await self._list_container_blobs(container)
            for blob in blobs:
                files.append(self._to_file_record(container, blob, table_name, record_id))
        return files

    async def delete_file(
        self,
        table_name: str,
        record_id: str,
        file_name: str,
        resolver: ContainerNameResolver,
    ) -> None:
        resolver = require_record(table_name, record_id, resolver)
        require_identifier(file_name, "file_name")

        container_name = resolver.resolve_file_container(table_name, record_id, file_name)
        container = self._container(container_name)
        try:
            await container.delete_blob(file_name, delete_snapshots="include")
        except ResourceNotFoundError:
            logger.debug(
                "Blob already absent",
                context={"container": container_name, "blob": file_name},
            )

    async def issue_access_token(
        self,
        request: TokenRequest,
        scope: TokenScope,
        resolver: ContainerNameResolver,
    ) -> AccessToken:
        target = require_token_target(request, resolver)
        if scope not in (TokenScope.FILE, TokenScope.RECORD):
            raise InvalidArgumentError(f"Unsupported token scope: {scope!r}")

        container_name = resolver.resolve_file_container(
            target.table_name, target.parent_id, target.name
        )
        container = self._container(container_name)
        await self._provision_container(container)

        # The SAS "se" field carries whole seconds
        expires_at = (self._clock() + self.token_validity).replace(microsecond=0)
        grants = {keyword: True for keyword in translate_permissions(request.permissions, PERMISSION_MAP)}

        if scope == TokenScope.FILE:
            resource_uri = container.get_blob_client(target.name).url
            sas = generate_blob_sas(
                account_name=self.account_name,
                container_name=container_name,
                blob_name=target.name,
                account_key=self._account_key,
                permission=BlobSasPermissions(**grants),
                expiry=expires_at,
            )
        else:
            resource_uri = container.url
            sas = generate_container_sas(
                account_name=self.account_name,
                container_name=container_name,
                account_key=self._account_key,
                permission=ContainerSasPermissions(**grants),
                expiry=expires_at,
            )

        logger.debug(
            "Signed access token",
            context={
                "container": container_name,
                "scope": scope.name,
                "grants": sorted(grants),
            },
        )
        return AccessToken(
            resource_uri=resource_uri,
            entity_id=target.parent_id,
            permissions=request.permissions,
            scope=scope,
            raw_token=sas,
            expires_at=expires_at,
        )

    def _container(self, container_name: str) -> ContainerClient:
        """Get a container client. Performs no I/O."""
        return self._service.get_container_client(container_name)

    async def _provision_container(self, container: ContainerClient) -> None:
        """Create the container if it doesn't exist."""
        try:
            await container.create_container()
            logger.info("Created container", context={"container": container.container_name})
        except ResourceExistsError:
            pass

    async def _list_container_blobs(self, container: ContainerClient) -> list[Any]:
        """List blob properties (with metadata) of a container.

        A container that was never provisioned holds no files.
        """
        try:
            return [blob async for blob in container.list_blobs(include=["metadata"])]
        except ResourceNotFoundError:
            return []

    @staticmethod
    def _to_file_record(
        container: ContainerClient,
        blob: Any,
        table_name: str,
        record_id: str,
    ) -> FileRecord:
        content_settings = getattr(blob, "content_settings", None)
        blob_url = container.get_blob_client(blob.name).url
        return FileRecord.from_blob(
            name=blob.name,
            table_name=table_name,
            parent_id=record_id,
            length=blob.size or 0,
            content_md5=getattr(content_settings, "content_md5", None),
            last_modified=blob.last_modified,
            metadata=blob.metadata,
            store_uri=unquote(urlparse(blob_url).path),
        )
