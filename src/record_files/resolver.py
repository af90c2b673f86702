"""Default container naming: one container per record."""

from record_files.utils.validation import require_identifier


class DefaultContainerNameResolver:
    """Maps every record to a single container.

    The name is `lowercase(prefix + table + "-" + record + suffix)` and does
    not depend on the file name, so all files of a record share a container.

    Example:
        >>> DefaultContainerNameResolver().resolve_file_container("Notes", "abc-123", "photo.png")
        'notes-abc-123'
    """

    def __init__(self, prefix: str | None = None, suffix: str | None = None) -> None:
        """Initialize the resolver.

        Args:
            prefix: Prepended to every container name (deployment specific)
            suffix: Appended to every container name
        """
        self.prefix = prefix or ""
        self.suffix = suffix or ""

    def resolve_file_container(self, table_name: str, record_id: str, file_name: str) -> str:
        return self._container_name(table_name, record_id)

    def resolve_record_containers(self, table_name: str, record_id: str) -> list[str]:
        return [self._container_name(table_name, record_id)]

    def _container_name(self, table_name: str, record_id: str) -> str:
        require_identifier(table_name, "table_name")
        require_identifier(record_id, "record_id")
        return f"{self.prefix}{table_name}-{record_id}{self.suffix}".lower()

    def __repr__(self) -> str:
        return f"DefaultContainerNameResolver(prefix={self.prefix!r}, suffix={self.suffix!r})"
