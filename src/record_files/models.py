"""Domain models: files, permissions, token requests and issued tokens."""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum, IntFlag
from types import MappingProxyType
from typing import Any, Mapping, TypeGuard

from record_files.exceptions import ImmutableFileError, InvalidArgumentError
from record_files.utils.validation import require_identifier


class Permissions(IntFlag):
    """Abstract permission vocabulary requested by clients.

    Providers translate these bits to their own native grants.
    """

    NONE = 0x0
    READ = 0x1
    WRITE = 0x2
    DELETE = 0x4
    LIST = 0x8
    READ_WRITE = READ | WRITE
    ALL = READ | WRITE | DELETE | LIST


class TokenScope(IntEnum):
    """What an issued token covers: a whole record or one file."""

    RECORD = 0
    FILE = 1


def parse_permissions(value: Any) -> Permissions:
    """Parse permissions from an int or a comma separated name list.

    Accepts `3`, `"3"`, `"Read, Write"` and `"READ_WRITE"`.

    Raises:
        InvalidArgumentError: On unknown names or bits outside `Permissions.ALL`
    """
    if value is None:
        return Permissions.NONE
    if isinstance(value, Permissions):
        return value
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Invalid permissions value: {value!r}")
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            value = int(text)
        else:
            result = Permissions.NONE
            for part in filter(None, (p.strip() for p in text.split(","))):
                key = part.replace("ReadWrite", "READ_WRITE").upper()
                if key not in Permissions.__members__:
                    raise InvalidArgumentError(f"Unknown permission: {part}")
                result |= Permissions[key]
            return result
    if not isinstance(value, int) or value < 0 or value & ~int(Permissions.ALL):
        raise InvalidArgumentError(f"Invalid permissions value: {value!r}")
    return Permissions(value)


def _freeze_metadata(value: Any) -> Mapping[str, str]:
    """Copy metadata into a read-only mapping of strings."""
    if not isinstance(value, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise InvalidArgumentError("metadata must map strings to strings")
    return MappingProxyType(dict(value))


def _optional_str(value: Any, name: str) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{name} must be a string")
    return value


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class FileRecord:
    """A file owned by a data-store record.

    Built from a backend listing (read path) or with `FileRecord.target()`
    as the subject of a token/delete request. Instances are frozen.
    """

    id: str
    name: str
    table_name: str
    parent_id: str
    content_md5: str | None = None
    length: int = 0
    last_modified: datetime | None = None
    store_uri: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        require_identifier(self.id, "id")
        require_identifier(self.name, "name")
        require_identifier(self.table_name, "table_name")
        require_identifier(self.parent_id, "parent_id")
        if self.length < 0:
            raise InvalidArgumentError("length may not be negative")
        object.__setattr__(self, "metadata", _freeze_metadata(self.metadata))

    @classmethod
    def target(cls, table_name: str, parent_id: str, name: str) -> "FileRecord":
        """Build the partially populated file a request refers to."""
        return cls(id=name, name=name, table_name=table_name, parent_id=parent_id)

    @classmethod
    def from_blob(
        cls,
        name: str,
        table_name: str,
        parent_id: str,
        length: int = 0,
        content_md5: bytes | str | None = None,
        last_modified: datetime | None = None,
        metadata: Mapping[str, str] | None = None,
        store_uri: str | None = None,
    ) -> "FileRecord":
        """Build a record from a backend listing entry.

        The object name becomes both `id` and `name`. A binary MD5 digest is
        rendered base64, the way storage services report it.
        """
        if isinstance(content_md5, (bytes, bytearray)):
            content_md5 = base64.b64encode(bytes(content_md5)).decode("ascii") or None
        return cls(
            id=name,
            name=name,
            table_name=table_name,
            parent_id=parent_id,
            content_md5=content_md5 or None,
            length=length or 0,
            last_modified=last_modified,
            store_uri=store_uri,
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a camelCase JSON-ready dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "tableName": self.table_name,
            "parentId": self.parent_id,
            "contentMD5": self.content_md5,
            "length": self.length,
            "lastModified": _format_timestamp(self.last_modified),
            "storeUri": self.store_uri,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        table_name: str | None = None,
        parent_id: str | None = None,
    ) -> "FileRecord":
        """Create from a camelCase dictionary.

        `table_name` and `parent_id` fill in fields the payload leaves out.
        """
        if not isinstance(data, Mapping):
            raise InvalidArgumentError("File must be a JSON object")
        name = data.get("name")
        try:
            length = int(data.get("length") or 0)
        except (TypeError, ValueError):
            raise InvalidArgumentError("length must be an integer") from None
        try:
            last_modified = _parse_timestamp(data.get("lastModified"))
        except (TypeError, ValueError):
            raise InvalidArgumentError("lastModified must be an ISO 8601 timestamp") from None
        return cls(
            id=data.get("id") or name,
            name=name,
            table_name=data.get("tableName") or table_name,
            parent_id=data.get("parentId") or parent_id,
            content_md5=data.get("contentMD5"),
            length=length,
            last_modified=last_modified,
            store_uri=data.get("storeUri"),
            metadata=data.get("metadata") or {},
        )


class AbsentFile:
    """The "no file" variant of a stored file.

    Every field reads as its zero value and every assignment raises
    `ImmutableFileError`. Use the `ABSENT_FILE` singleton.
    """

    __slots__ = ()
    _instance: "AbsentFile | None" = None

    id = None
    name = None
    table_name = None
    parent_id = None
    content_md5 = None
    length = 0
    last_modified = None
    store_uri = None
    metadata: Mapping[str, str] = MappingProxyType({})

    def __new__(cls) -> "AbsentFile":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __setattr__(self, name: str, value: Any) -> None:
        raise ImmutableFileError(f"Cannot modify '{name}' of the absent file")

    def __delattr__(self, name: str) -> None:
        raise ImmutableFileError(f"Cannot modify '{name}' of the absent file")

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT_FILE"


ABSENT_FILE = AbsentFile()

StoredFile = FileRecord | AbsentFile


def is_present(file: StoredFile) -> TypeGuard[FileRecord]:
    """Narrow a stored file to a real `FileRecord`."""
    return isinstance(file, FileRecord)


@dataclass(frozen=True)
class TokenRequest:
    """A client's request for an access token."""

    permissions: Permissions = Permissions.NONE
    provider_name: str | None = None
    target_file: FileRecord | None = None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        table_name: str | None = None,
        parent_id: str | None = None,
    ) -> "TokenRequest":
        """Parse `{permissions, providerName, targetFile}`.

        Raises:
            InvalidArgumentError: If the payload is malformed
        """
        if not isinstance(data, Mapping):
            raise InvalidArgumentError("Request body must be a JSON object")

        target = data.get("targetFile")
        if target is None:
            raise InvalidArgumentError("Missing required field: targetFile")

        return cls(
            permissions=parse_permissions(data.get("permissions")),
            provider_name=_optional_str(data.get("providerName"), "providerName"),
            target_file=FileRecord.from_dict(target, table_name=table_name, parent_id=parent_id),
        )


@dataclass(frozen=True)
class AccessToken:
    """A signed, expiring credential bound to one resource.

    `permissions` echoes the abstract permissions that were requested; the
    backend-native grant is encoded inside `raw_token`.
    """

    resource_uri: str
    entity_id: str
    permissions: Permissions
    scope: TokenScope
    raw_token: str
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.resource_uri:
            raise InvalidArgumentError("The argument 'resource_uri' may not be empty.")
        if not self.entity_id:
            raise InvalidArgumentError("The argument 'entity_id' may not be an empty or null string.")
        if not self.raw_token:
            raise InvalidArgumentError("The argument 'raw_token' may not be an empty or null string.")

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "resourceUri": self.resource_uri,
            "entityId": self.entity_id,
            "permissions": int(self.permissions),
            "scope": int(self.scope),
            "rawToken": self.raw_token,
            "expiresAt": _format_timestamp(self.expires_at),
        }
