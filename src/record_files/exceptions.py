"""record-files exceptions."""


class RecordFilesError(Exception):
    """Base exception for record-files."""

    pass


class ConfigError(RecordFilesError):
    """Configuration error (missing or unusable storage credentials)."""

    pass


class InvalidArgumentError(RecordFilesError, ValueError):
    """A caller supplied a missing or malformed identifier or request."""

    pass


class ImmutableFileError(RecordFilesError, AttributeError):
    """Attempted to modify the absent-file sentinel."""

    pass


class TokenError(RecordFilesError):
    """Access token verification error."""

    pass


class TokenExpiredError(TokenError):
    """Token validity window has elapsed."""

    pass


class TokenInvalidError(TokenError):
    """Token is malformed, tampered with, or bound to another resource."""

    pass


class PermissionDeniedError(TokenError):
    """Token does not grant the requested operation."""

    pass
