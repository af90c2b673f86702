"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from record_files.models import AccessToken, FileRecord, TokenRequest, TokenScope
from record_files.protocols import ContainerNameResolver

# Azurite's published development account key
DEV_ACCOUNT_KEY = (
    "Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw=="
)
DEV_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=https;AccountName=devstoreaccount1;"
    f"AccountKey={DEV_ACCOUNT_KEY};EndpointSuffix=core.windows.net"
)
ISSUED_AT = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for token expiry tests."""

    def __init__(self, now: datetime = ISSUED_AT) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingProvider:
    """In-memory StorageProvider that records every call."""

    def __init__(self, name: str = "Recording Storage") -> None:
        self.name = name
        self.files: dict[str, list[str]] = {}
        self.calls: list[tuple] = []

    async def list_record_files(
        self, table_name: str, record_id: str, resolver: ContainerNameResolver
    ) -> list[FileRecord]:
        self.calls.append(("list", table_name, record_id, resolver))
        result = []
        for container in resolver.resolve_record_containers(table_name, record_id):
            for name in self.files.get(container, []):
                result.append(FileRecord.from_blob(name, table_name, record_id))
        return result

    async def delete_file(
        self, table_name: str, record_id: str, file_name: str, resolver: ContainerNameResolver
    ) -> None:
        self.calls.append(("delete", table_name, record_id, file_name, resolver))
        container = resolver.resolve_file_container(table_name, record_id, file_name)
        if file_name in self.files.get(container, []):
            self.files[container].remove(file_name)

    async def issue_access_token(
        self, request: TokenRequest, scope: TokenScope, resolver: ContainerNameResolver
    ) -> AccessToken:
        self.calls.append(("token", request, scope, resolver))
        target = request.target_file
        container = resolver.resolve_file_container(target.table_name, target.parent_id, target.name)
        uri = f"memory://{container}"
        if scope == TokenScope.FILE:
            uri = f"{uri}/{target.name}"
        return AccessToken(
            resource_uri=uri,
            entity_id=target.parent_id,
            permissions=request.permissions,
            scope=scope,
            raw_token="sig=recorded",
        )


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock pinned at ISSUED_AT."""
    return FakeClock()


@pytest.fixture
def recording_provider() -> RecordingProvider:
    """In-memory provider recording its calls."""
    return RecordingProvider()


@pytest.fixture
def make_recording_provider():
    """Factory for additional named recording providers."""
    return RecordingProvider


@pytest.fixture
def sample_config_dict(tmp_path):
    """Sample configuration dictionary for testing."""
    return {
        "storage": {
            "provider": "local",
            "connection_string_name": "TEST_STORAGE_CONNECTION",
            "token_validity_minutes": 30,
            "base_url": "http://localhost:8080/files",
        },
        "containers": {"prefix": "dev-", "suffix": ""},
        "server": {"port": 9000, "cors_origins": ["http://localhost:3000"]},
        "logging": {"level": "DEBUG", "format": "text"},
    }


@pytest.fixture
def dev_connection_string() -> str:
    """Connection string for the development storage account."""
    return DEV_CONNECTION_STRING
