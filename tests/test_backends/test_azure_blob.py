"""Tests for the Azure Blob Storage provider.

Backend I/O (container provisioning, listing, deleting) is stubbed; SAS
signing is real and runs offline against the development account key.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs

import pytest
from azure.core.exceptions import ResourceNotFoundError, ServiceRequestError

from record_files.backends.azure_blob import PERMISSION_MAP, AzureBlobStorageProvider
from record_files.backends.base import TOKEN_VALIDITY
from record_files.exceptions import ConfigError, InvalidArgumentError
from record_files.models import FileRecord, Permissions, TokenRequest, TokenScope
from record_files.protocols import StorageProvider
from record_files.resolver import DefaultContainerNameResolver

ACCOUNT_URL = "https://devstoreaccount1.blob.core.windows.net"


class StubAzureProvider(AzureBlobStorageProvider):
    """Provider with container provisioning and listing stubbed out."""

    def __init__(self, *args, blobs=None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.blobs = blobs or {}
        self.provisioned: list[str] = []

    async def _provision_container(self, container) -> None:
        self.provisioned.append(container.container_name)

    async def _list_container_blobs(self, container) -> list:
        return list(self.blobs.get(container.container_name, []))


class TwoContainerResolver:
    """Resolver spreading a record across two containers."""

    def resolve_file_container(self, table_name, record_id, file_name):
        return f"{table_name}-{record_id}-a".lower()

    def resolve_record_containers(self, table_name, record_id):
        return [f"{table_name}-{record_id}-a".lower(), f"{table_name}-{record_id}-b".lower()]


def blob(name: str, size: int = 10, md5: bytes | None = None, metadata=None):
    """Fake listing entry shaped like azure.storage.blob.BlobProperties."""
    return SimpleNamespace(
        name=name,
        size=size,
        content_settings=SimpleNamespace(content_md5=md5),
        last_modified=datetime(2026, 1, 1, tzinfo=timezone.utc),
        metadata=metadata or {},
    )


def token_request(permissions: Permissions = Permissions.READ_WRITE, name: str = "photo.png") -> TokenRequest:
    return TokenRequest(
        permissions=permissions,
        target_file=FileRecord.target("Notes", "abc-123", name),
    )


@pytest.fixture
def resolver() -> DefaultContainerNameResolver:
    return DefaultContainerNameResolver()


@pytest.fixture
def provider(dev_connection_string, clock) -> StubAzureProvider:
    return StubAzureProvider(dev_connection_string, clock=clock)


class TestConstruction:
    """Tests for provider construction."""

    @pytest.mark.parametrize("connection_string", [None, ""])
    def test_missing_connection_string(self, connection_string) -> None:
        with pytest.raises(ConfigError):
            AzureBlobStorageProvider(connection_string)

    def test_malformed_connection_string(self) -> None:
        with pytest.raises(ConfigError):
            AzureBlobStorageProvider("not-a-connection-string")

    def test_account_details(self, provider) -> None:
        assert provider.account_name == "devstoreaccount1"
        assert provider.name == "Microsoft Azure Blob Storage"
        assert provider.token_validity == TOKEN_VALIDITY == timedelta(hours=1)

    def test_satisfies_protocol(self, provider) -> None:
        assert isinstance(provider, StorageProvider)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, provider) -> None:
        provider._service = MagicMock(close=AsyncMock())

        async with provider:
            pass
        await provider.close()

        provider._service.close.assert_awaited_once()


class TestPermissionMap:
    """Tests for the abstract -> SAS permission table."""

    def test_list_has_no_sas_equivalent(self) -> None:
        assert [abstract for abstract, _ in PERMISSION_MAP] == [
            Permissions.READ,
            Permissions.WRITE,
            Permissions.DELETE,
        ]


class TestIssueAccessToken:
    """Tests for SAS token issuance."""

    @pytest.mark.asyncio
    async def test_file_scope_signs_blob(self, provider, resolver) -> None:
        token = await provider.issue_access_token(token_request(), TokenScope.FILE, resolver)
        query = parse_qs(token.raw_token)

        assert token.resource_uri == f"{ACCOUNT_URL}/notes-abc-123/photo.png"
        assert token.scope == TokenScope.FILE
        assert token.entity_id == "abc-123"
        assert query["sr"] == ["b"]
        assert query["sp"] == ["rw"]
        assert "sig" in query

    @pytest.mark.asyncio
    async def test_record_scope_signs_container(self, provider, resolver) -> None:
        token = await provider.issue_access_token(token_request(), TokenScope.RECORD, resolver)
        query = parse_qs(token.raw_token)

        assert token.resource_uri == f"{ACCOUNT_URL}/notes-abc-123"
        assert token.scope == TokenScope.RECORD
        assert query["sr"] == ["c"]

    @pytest.mark.asyncio
    async def test_scopes_share_container(self, provider, resolver) -> None:
        file_token = await provider.issue_access_token(token_request(), TokenScope.FILE, resolver)
        record_token = await provider.issue_access_token(token_request(), TokenScope.RECORD, resolver)

        assert file_token.resource_uri.startswith(record_token.resource_uri + "/")

    @pytest.mark.asyncio
    async def test_echoes_requested_permissions(self, provider, resolver) -> None:
        request = token_request(Permissions.ALL)
        token = await provider.issue_access_token(request, TokenScope.FILE, resolver)

        assert token.permissions == Permissions.ALL
        # LIST is not representable in the signature
        assert parse_qs(token.raw_token)["sp"] == ["rwd"]

    @pytest.mark.asyncio
    async def test_read_write_echoed_verbatim(self, provider, resolver) -> None:
        token = await provider.issue_access_token(token_request(), TokenScope.FILE, resolver)
        assert token.permissions == Permissions.READ | Permissions.WRITE

    @pytest.mark.asyncio
    async def test_list_only_grants_nothing_native(self, provider, resolver) -> None:
        token = await provider.issue_access_token(token_request(Permissions.LIST), TokenScope.RECORD, resolver)

        assert token.permissions == Permissions.LIST
        assert "sp" not in parse_qs(token.raw_token)

    @pytest.mark.asyncio
    async def test_validity_window_is_one_hour(self, provider, resolver, clock) -> None:
        token = await provider.issue_access_token(token_request(), TokenScope.FILE, resolver)

        assert token.expires_at == clock() + timedelta(hours=1)
        assert parse_qs(token.raw_token)["se"] == ["2026-01-01T13:00:00Z"]

        clock.advance(minutes=59)
        assert not token.is_expired(clock())
        clock.advance(minutes=2)
        assert token.is_expired(clock())

    @pytest.mark.asyncio
    async def test_custom_validity(self, dev_connection_string, clock, resolver) -> None:
        provider = StubAzureProvider(dev_connection_string, clock=clock, token_validity=timedelta(minutes=5))
        token = await provider.issue_access_token(token_request(), TokenScope.FILE, resolver)

        assert parse_qs(token.raw_token)["se"] == ["2026-01-01T12:05:00Z"]

    @pytest.mark.asyncio
    async def test_provisions_container(self, provider, resolver) -> None:
        await provider.issue_access_token(token_request(), TokenScope.RECORD, resolver)
        assert provider.provisioned == ["notes-abc-123"]

    @pytest.mark.asyncio
    async def test_uses_resolver_prefix(self, provider) -> None:
        resolver = DefaultContainerNameResolver(prefix="prod-")
        token = await provider.issue_access_token(token_request(), TokenScope.RECORD, resolver)
        assert token.resource_uri == f"{ACCOUNT_URL}/prod-notes-abc-123"

    @pytest.mark.asyncio
    async def test_null_request(self, provider, resolver) -> None:
        with pytest.raises(InvalidArgumentError):
            await provider.issue_access_token(None, TokenScope.FILE, resolver)
        assert provider.provisioned == []

    @pytest.mark.asyncio
    async def test_null_resolver(self, provider) -> None:
        with pytest.raises(InvalidArgumentError):
            await provider.issue_access_token(token_request(), TokenScope.FILE, None)
        assert provider.provisioned == []

    @pytest.mark.asyncio
    async def test_missing_target_file(self, provider, resolver) -> None:
        with pytest.raises(InvalidArgumentError):
            await provider.issue_access_token(
                TokenRequest(permissions=Permissions.READ), TokenScope.FILE, resolver
            )

    @pytest.mark.asyncio
    async def test_backend_errors_propagate(self, dev_connection_string, resolver) -> None:
        provider = AzureBlobStorageProvider(dev_connection_string)
        provider._provision_container = AsyncMock(side_effect=ServiceRequestError("unreachable"))

        with pytest.raises(ServiceRequestError):
            await provider.issue_access_token(token_request(), TokenScope.FILE, resolver)


class TestListRecordFiles:
    """Tests for listing a record's files."""

    @pytest.mark.asyncio
    async def test_maps_blobs_to_file_records(self, dev_connection_string, resolver) -> None:
        provider = StubAzureProvider(
            dev_connection_string,
            blobs={"notes-abc-123": [blob("a.png", 5, md5=b"\x00" * 16, metadata={"k": "v"}), blob("b.png")]},
        )

        files = await provider.list_record_files("Notes", "abc-123", resolver)

        assert [f.name for f in files] == ["a.png", "b.png"]
        first = files[0]
        assert first.id == "a.png"
        assert first.table_name == "Notes"
        assert first.parent_id == "abc-123"
        assert first.length == 5
        assert first.content_md5 == "AAAAAAAAAAAAAAAAAAAAAA=="
        assert first.metadata == {"k": "v"}
        assert first.store_uri == "/notes-abc-123/a.png"

    @pytest.mark.asyncio
    async def test_concatenates_containers_in_order(self, dev_connection_string) -> None:
        provider = StubAzureProvider(
            dev_connection_string,
            blobs={
                "notes-abc-123-a": [blob("2.png"), blob("1.png")],
                "notes-abc-123-b": [blob("0.png")],
            },
        )

        files = await provider.list_record_files("Notes", "abc-123", TwoContainerResolver())

        assert [f.name for f in files] == ["2.png", "1.png", "0.png"]

    @pytest.mark.asyncio
    async def test_empty_record(self, provider, resolver) -> None:
        assert await provider.list_record_files("Notes", "abc-123", resolver) == []

    @pytest.mark.asyncio
    async def test_missing_container_is_empty(self, dev_connection_string) -> None:
        provider = AzureBlobStorageProvider(dev_connection_string)

        async def missing(*args, **kwargs):
            raise ResourceNotFoundError("The specified container does not exist.")
            yield

        container = MagicMock()
        container.list_blobs = missing

        assert await provider._list_container_blobs(container) == []

    @pytest.mark.asyncio
    async def test_rejects_missing_identifiers(self, provider, resolver) -> None:
        with pytest.raises(InvalidArgumentError):
            await provider.list_record_files("", "abc-123", resolver)
        with pytest.raises(InvalidArgumentError):
            await provider.list_record_files("Notes", "abc-123", None)


class TestDeleteFile:
    """Tests for deleting a file."""

    @pytest.fixture
    def container(self):
        container = MagicMock()
        container.delete_blob = AsyncMock()
        return container

    @pytest.mark.asyncio
    async def test_deletes_blob_in_resolved_container(self, provider, resolver, container) -> None:
        provider._container = MagicMock(return_value=container)

        await provider.delete_file("Notes", "abc-123", "photo.png", resolver)

        provider._container.assert_called_once_with("notes-abc-123")
        container.delete_blob.assert_awaited_once_with("photo.png", delete_snapshots="include")

    @pytest.mark.asyncio
    async def test_missing_blob_is_not_an_error(self, provider, resolver, container) -> None:
        container.delete_blob.side_effect = ResourceNotFoundError("The specified blob does not exist.")
        provider._container = MagicMock(return_value=container)

        await provider.delete_file("Notes", "abc-123", "photo.png", resolver)  # Should not raise

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, provider, resolver, container) -> None:
        container.delete_blob.side_effect = ServiceRequestError("unreachable")
        provider._container = MagicMock(return_value=container)

        with pytest.raises(ServiceRequestError):
            await provider.delete_file("Notes", "abc-123", "photo.png", resolver)

    @pytest.mark.asyncio
    async def test_rejects_missing_file_name(self, provider, resolver) -> None:
        with pytest.raises(InvalidArgumentError):
            await provider.delete_file("Notes", "abc-123", "", resolver)
