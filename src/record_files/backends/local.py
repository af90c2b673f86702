"""Local filesystem storage provider.

Suitable for development and single-server deployments: each container is
a directory under a base path and tokens are HMAC-SHA256 signed query
strings that the serving process checks with `verify_token()`.
"""

import asyncio
import atexit
import base64
import hashlib
import hmac
import os
import secrets
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, quote, unquote, urlencode, urlparse

from record_files.backends.base import (
    TOKEN_VALIDITY,
    Clock,
    require_record,
    require_token_target,
    translate_permissions,
    utc_now,
)
from record_files.exceptions import (
    ConfigError,
    InvalidArgumentError,
    PermissionDeniedError,
    TokenExpiredError,
    TokenInvalidError,
)
from record_files.models import AccessToken, FileRecord, Permissions, TokenRequest, TokenScope
from record_files.observability import get_logger
from record_files.protocols.container_resolver import ContainerNameResolver
from record_files.utils.validation import require_identifier

logger = get_logger(__name__)

_max_workers = int(os.environ.get("RECORD_FILES_WORKERS", "8"))
_executor = ThreadPoolExecutor(max_workers=_max_workers)

atexit.register(_executor.shutdown, wait=False)

SIGNATURE_VERSION = "local-1"
EXPIRY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Abstract permission -> permission letter carried in the token's "sp" field
PERMISSION_MAP: tuple[tuple[Permissions, str], ...] = (
    (Permissions.READ, "r"),
    (Permissions.WRITE, "w"),
    (Permissions.DELETE, "d"),
)


def parse_connection_string(connection_string: str) -> dict[str, str]:
    """Parse `Key=Value;Key=Value` pairs. Keys are case-insensitive."""
    settings: dict[str, str] = {}
    for part in connection_string.split(";"):
        if not part.strip():
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise ConfigError(f"Malformed connection string segment: {part!r}")
        settings[key.strip().lower()] = value.strip()
    return settings


class LocalStorageProvider:
    """Storage provider using the local filesystem."""

    name = "Local File Storage"

    def __init__(
        self,
        path: str | None = None,
        secret_key: str | None = None,
        base_url: str | None = None,
        connection_string: str | None = None,
        clock: Clock | None = None,
        token_validity: timedelta = TOKEN_VALIDITY,
        **kwargs: Any,
    ) -> None:
        """Initialize local storage provider.

        Explicit arguments take precedence over `Path`, `SecretKey` and
        `BaseUrl` entries of the connection string.

        Args:
            path: Base directory for containers. Defaults to ./data/containers
            secret_key: HMAC key for signing tokens; random if omitted
            base_url: URL prefix of resource URIs. Defaults to /files
            connection_string: e.g. "Path=/srv/files;SecretKey=..."
            clock: Returns the current UTC time (injected in tests)
            token_validity: Lifetime of issued tokens
            **kwargs: Ignored (for compatibility with other providers)
        """
        settings = parse_connection_string(connection_string) if connection_string else {}

        self.base_path = Path(path or settings.get("path") or "./data/containers")
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = (base_url or settings.get("baseurl") or "/files").rstrip("/")

        key = secret_key or settings.get("secretkey")
        if not key:
            logger.warning("No secret key configured; tokens will not survive a restart")
            key = secrets.token_hex(32)
        self._secret_key = key.encode("utf-8")

        self._clock = clock or utc_now
        self.token_validity = token_validity

    def _container_path(self, container_name: str) -> Path:
        return self._safe_join(self.base_path, container_name)

    @staticmethod
    def _safe_join(base: Path, name: str) -> Path:
        """Join a single literal path segment, rejecting traversal attempts.

        Names are never percent-decoded: `a%61` and `aa` are distinct.
        """
        if (
            not name
            or name in (".", "..")
            or "/" in name
            or "\\" in name
            or "\x00" in name
        ):
            raise InvalidArgumentError(f"Invalid name: {name}")
        return base / name

    def _resource_path(self, container_name: str, file_name: str | None = None) -> str:
        if file_name is None:
            return f"/{container_name}"
        return f"/{container_name}/{file_name}"

    def _resource_uri(self, resource_path: str) -> str:
        return f"{self.base_url}{quote(resource_path)}"

    async def list_record_files(
        self,
        table_name: str,
        record_id: str,
        resolver: ContainerNameResolver,
    ) -> list[FileRecord]:
        resolver = require_record(table_name, record_id, resolver)

        files: list[FileRecord] = []
        for container_name in resolver.resolve_record_containers(table_name, record_id):
            container_path = self._container_path(container_name)

            def _list() -> list[FileRecord]:
                if not container_path.is_dir():
                    return []
                entries = []
                for path in sorted(container_path.iterdir()):
                    try:
                        if not path.is_file():
                            continue
                        stat = path.stat()
                        with path.open("rb") as f:
                            digest = hashlib.file_digest(f, "md5").digest()
                    except FileNotFoundError:
                        # Deleted while listing
                        continue
                    entries.append(FileRecord.from_blob(
                        name=path.name,
                        table_name=table_name,
                        parent_id=record_id,
                        length=stat.st_size,
                        content_md5=digest,
                        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                        store_uri=self._resource_path(container_name, path.name),
                    ))
                return entries

            loop = asyncio.get_running_loop()
            files.extend(await loop.run_in_executor(_executor, _list))
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
        path = self._safe_join(self._container_path(container_name), file_name)

        def _delete() -> None:
            path.unlink(missing_ok=True)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, _delete)

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
        container_path = self._container_path(container_name)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            _executor, lambda: container_path.mkdir(parents=True, exist_ok=True)
        )

        if scope == TokenScope.FILE:
            self._safe_join(container_path, target.name)
            resource_path = self._resource_path(container_name, target.name)
            signed_resource = "b"
        else:
            resource_path = self._resource_path(container_name)
            signed_resource = "c"

        # "se" carries whole seconds; the advertised expiry must match it
        expires_at = (self._clock() + self.token_validity).replace(microsecond=0)
        fields = {
            "sv": SIGNATURE_VERSION,
            "sr": signed_resource,
            "sp": "".join(translate_permissions(request.permissions, PERMISSION_MAP)),
            "se": expires_at.strftime(EXPIRY_FORMAT),
        }
        fields["sig"] = self._sign(resource_path, fields)

        return AccessToken(
            resource_uri=self._resource_uri(resource_path),
            entity_id=target.parent_id,
            permissions=request.permissions,
            scope=scope,
            raw_token=urlencode(fields),
            expires_at=expires_at,
        )

    def verify_token(
        self,
        resource_uri: str,
        raw_token: str,
        required: Permissions = Permissions.NONE,
    ) -> None:
        """Check that a token grants `required` on a file or container URI.

        A record-scoped token covers the container and every file in it; a
        file-scoped token covers exactly one file.

        Raises:
            TokenInvalidError: Malformed token, bad signature or other resource
            TokenExpiredError: The validity window has elapsed
            PermissionDeniedError: The token does not carry `required`
        """
        query = {k: v[0] for k, v in parse_qs(raw_token, keep_blank_values=True).items()}
        missing = {"sv", "sr", "sp", "se", "sig"} - query.keys()
        if missing:
            raise TokenInvalidError(f"Token is missing fields: {', '.join(sorted(missing))}")
        if query["sv"] != SIGNATURE_VERSION:
            raise TokenInvalidError(f"Unsupported token version: {query['sv']}")

        path = unquote(urlparse(resource_uri).path)
        base_path = unquote(urlparse(self.base_url).path)
        if base_path and path.startswith(base_path):
            path = path[len(base_path):]
        segments = [s for s in path.split("/") if s]
        if not segments or len(segments) > 2:
            raise TokenInvalidError(f"Not a storage resource: {resource_uri}")

        if query["sr"] == "c":
            signed_path = self._resource_path(segments[0])
        elif query["sr"] == "b" and len(segments) == 2:
            signed_path = self._resource_path(segments[0], segments[1])
        else:
            raise TokenInvalidError("Token does not cover this resource")

        expected = self._sign(signed_path, query)
        if not hmac.compare_digest(expected, query["sig"]):
            raise TokenInvalidError("Token signature mismatch")

        try:
            expires_at = datetime.strptime(query["se"], EXPIRY_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            raise TokenInvalidError("Malformed token expiry") from None
        if self._clock() >= expires_at:
            raise TokenExpiredError("Token has expired")

        needed = set(translate_permissions(required, PERMISSION_MAP))
        # Bits with no token equivalent (LIST) are never granted
        if required & ~int(Permissions.READ | Permissions.WRITE | Permissions.DELETE):
            raise PermissionDeniedError("Token cannot grant list access")
        if not needed <= set(query["sp"]):
            raise PermissionDeniedError("Token does not grant the requested permissions")

    def _sign(self, resource_path: str, fields: dict[str, str]) -> str:
        message = "\n".join(
            [fields["sv"], fields["sr"], fields["sp"], fields["se"], resource_path]
        )
        digest = hmac.new(self._secret_key, message.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii")
