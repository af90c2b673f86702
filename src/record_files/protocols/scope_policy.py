"""ScopePolicy protocol deciding how broad an issued token is."""

from typing import Protocol, runtime_checkable

from record_files.models import TokenRequest, TokenScope


@runtime_checkable
class ScopePolicy(Protocol):
    """Decides the scope of a token for a given record and request."""

    def determine_scope(self, entity_id: str, request: TokenRequest) -> TokenScope:
        ...
