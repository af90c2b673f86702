"""Scope policies for issued tokens."""

from record_files.models import TokenRequest, TokenScope


class RecordScopePolicy:
    """Grants tokens covering every file of the record (the default)."""

    def determine_scope(self, entity_id: str, request: TokenRequest) -> TokenScope:
        return TokenScope.RECORD


class FileScopePolicy:
    """Grants tokens covering only the requested file."""

    def determine_scope(self, entity_id: str, request: TokenRequest) -> TokenScope:
        return TokenScope.FILE
