"""record-files - scoped, expiring access tokens for files attached to records."""

from record_files.backends.base import TOKEN_VALIDITY
from record_files.config import STORAGE_CONNECTION_STRING_NAME, Config
from record_files.exceptions import (
    ConfigError,
    ImmutableFileError,
    InvalidArgumentError,
    RecordFilesError,
)
from record_files.models import (
    ABSENT_FILE,
    AbsentFile,
    AccessToken,
    FileRecord,
    Permissions,
    StoredFile,
    TokenRequest,
    TokenScope,
    is_present,
)
from record_files.observability import configure_logging, get_logger, register_metric_callback
from record_files.protocols import ContainerNameResolver, ScopePolicy, StorageProvider
from record_files.resolver import DefaultContainerNameResolver
from record_files.scope import FileScopePolicy, RecordScopePolicy
from record_files.service import FileAccessService

__version__ = "0.1.0"
__all__ = [
    # Service
    "FileAccessService",
    # Models
    "ABSENT_FILE",
    "AbsentFile",
    "AccessToken",
    "FileRecord",
    "Permissions",
    "StoredFile",
    "TokenRequest",
    "TokenScope",
    "is_present",
    # Collaborators
    "ContainerNameResolver",
    "DefaultContainerNameResolver",
    "FileScopePolicy",
    "RecordScopePolicy",
    "ScopePolicy",
    "StorageProvider",
    # Configuration
    "Config",
    "STORAGE_CONNECTION_STRING_NAME",
    "TOKEN_VALIDITY",
    "configure_logging",
    "get_logger",
    "register_metric_callback",
    # Errors
    "ConfigError",
    "ImmutableFileError",
    "InvalidArgumentError",
    "RecordFilesError",
]
