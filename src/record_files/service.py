"""File access orchestration for one entity type (table)."""

from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from record_files.config import Config, get_connection_string
from record_files.exceptions import ConfigError, InvalidArgumentError
from record_files.models import AccessToken, FileRecord, TokenRequest, TokenScope
from record_files.observability import Timer, emit_counter, emit_timer, get_logger
from record_files.plugins import create_storage_provider
from record_files.protocols import ContainerNameResolver, ScopePolicy, StorageProvider
from record_files.resolver import DefaultContainerNameResolver
from record_files.scope import RecordScopePolicy
from record_files.utils.validation import require_identifier, require_not_none

logger = get_logger(__name__)


class FileAccessService:
    """Issues tokens for, lists and deletes the files of one table's records.

    Example usage:
        service = FileAccessService("Notes", AzureBlobStorageProvider(conn_str))

        token = await service.issue_token("abc-123", request)
        files = await service.list_files("abc-123")
        await service.delete_file("abc-123", "photo.png")

    The scope of issued tokens comes from a `ScopePolicy` (whole record by
    default). Subclasses may override `determine_scope()` instead.
    """

    def __init__(
        self,
        table_name: str,
        provider: StorageProvider | Mapping[str, StorageProvider],
        resolver: ContainerNameResolver | None = None,
        scope_policy: ScopePolicy | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            table_name: Table whose records own the files
            provider: A storage provider, or several keyed by provider name;
                the first one is the default
            resolver: Default container resolver. Defaults to one container
                per record with no prefix or suffix
            scope_policy: Scope decision for issued tokens. Defaults to
                `RecordScopePolicy`
        """
        self.table_name = require_identifier(table_name, "table_name")

        if isinstance(provider, Mapping):
            providers = dict(provider)
        else:
            providers = {require_not_none(provider, "provider").name: provider}
        if not providers:
            raise InvalidArgumentError("At least one storage provider is required")

        self._providers = {name.lower(): p for name, p in providers.items()}
        self.provider: StorageProvider = next(iter(providers.values()))
        self.resolver: ContainerNameResolver = resolver or DefaultContainerNameResolver()
        self.scope_policy: ScopePolicy = scope_policy or RecordScopePolicy()

    @classmethod
    def for_entity(
        cls,
        entity_type: type,
        provider: StorageProvider | Mapping[str, StorageProvider],
        **kwargs: Any,
    ) -> "FileAccessService":
        """Create a service whose table name is the entity class name."""
        return cls(entity_type.__name__, provider, **kwargs)

    @classmethod
    def from_config(
        cls,
        table_name: str,
        config: Config | None = None,
        **kwargs: Any,
    ) -> "FileAccessService":
        """Create a service from configuration and the environment.

        The connection string is read from the environment variable named by
        `config.storage.connection_string_name`.

        Raises:
            ConfigError: If the credential is missing or the provider unknown
        """
        config = config or Config()
        storage = config.storage
        connection_string = get_connection_string(storage.connection_string_name)

        try:
            provider = create_storage_provider(
                storage.provider,
                connection_string=connection_string,
                token_validity=timedelta(minutes=storage.token_validity_minutes),
                base_url=storage.base_url,
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e

        kwargs.setdefault(
            "resolver",
            DefaultContainerNameResolver(config.containers.prefix, config.containers.suffix),
        )
        return cls(table_name, provider, **kwargs)

    @property
    def providers(self) -> dict[str, StorageProvider]:
        return dict(self._providers)

    def select_provider(self, provider_name: str | None = None) -> StorageProvider:
        """Pick the provider named by a request.

        With a single provider the name is not consulted.

        Raises:
            InvalidArgumentError: If several providers exist and none matches
        """
        if not provider_name or len(self._providers) == 1:
            return self.provider
        if not isinstance(provider_name, str):
            raise InvalidArgumentError(f"Invalid storage provider name: {provider_name!r}")
        provider = self._providers.get(provider_name.lower())
        if provider is None:
            raise InvalidArgumentError(f"Unknown storage provider: {provider_name}")
        return provider

    async def close(self) -> None:
        """Close every provider that holds client resources."""
        for provider in self._providers.values():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()

    async def __aenter__(self) -> "FileAccessService":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def determine_scope(self, entity_id: str, request: TokenRequest) -> TokenScope:
        return self.scope_policy.determine_scope(entity_id, request)

    async def issue_token(
        self,
        entity_id: str,
        request: TokenRequest,
        resolver: ContainerNameResolver | None = None,
    ) -> AccessToken:
        """Issue an access token for a file of a record.

        Args:
            entity_id: Id of the record owning the file
            request: Requested permissions and target file
            resolver: Container resolver for this call (default: the service's)

        Raises:
            InvalidArgumentError: If the request targets another table or record
        """
        require_identifier(entity_id, "entity_id")
        self._check_target(entity_id, request)

        scope = self.determine_scope(entity_id, request)
        provider = self.select_provider(request.provider_name)

        with Timer() as timer:
            token = await provider.issue_access_token(request, scope, resolver or self.resolver)

        logger.info(
            "Issued storage token",
            context={
                "table_name": self.table_name,
                "entity_id": entity_id,
                "scope": scope.name,
                "permissions": int(request.permissions),
                "provider": provider.name,
            },
            duration_ms=timer.duration_ms,
        )
        labels = {"scope": scope.name, "provider": provider.name}
        emit_counter("files.token.issued", labels)
        emit_timer("files.token.duration_ms", timer.duration_ms, labels)
        return token

    async def list_files(
        self,
        entity_id: str,
        resolver: ContainerNameResolver | None = None,
    ) -> list[FileRecord]:
        """List the files of a record. A record without files yields []."""
        require_identifier(entity_id, "entity_id")

        with Timer() as timer:
            files = await self.provider.list_record_files(
                self.table_name, entity_id, resolver or self.resolver
            )

        logger.info(
            "Listed record files",
            context={"table_name": self.table_name, "entity_id": entity_id, "count": len(files)},
            duration_ms=timer.duration_ms,
        )
        emit_counter("files.listed", {"provider": self.provider.name})
        return files

    async def delete_file(
        self,
        entity_id: str,
        file_name: str,
        resolver: ContainerNameResolver | None = None,
    ) -> None:
        """Delete a file of a record. Deleting an absent file succeeds."""
        require_identifier(entity_id, "entity_id")
        require_identifier(file_name, "file_name")

        with Timer() as timer:
            await self.provider.delete_file(
                self.table_name, entity_id, file_name, resolver or self.resolver
            )

        logger.info(
            "Deleted record file",
            context={"table_name": self.table_name, "entity_id": entity_id, "file": file_name},
            duration_ms=timer.duration_ms,
        )
        emit_counter("files.deleted", {"provider": self.provider.name})

    def _check_target(self, entity_id: str, request: TokenRequest) -> None:
        """Reject requests whose target file belongs to another record."""
        require_not_none(request, "request")
        target = require_not_none(request.target_file, "request.target_file")
        if target.table_name.lower() != self.table_name.lower():
            raise InvalidArgumentError(
                f"Target file belongs to table '{target.table_name}', not '{self.table_name}'"
            )
        if target.parent_id != entity_id:
            raise InvalidArgumentError(
                f"Target file belongs to record '{target.parent_id}', not '{entity_id}'"
            )
