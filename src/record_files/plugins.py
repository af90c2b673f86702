"""Storage provider discovery via Python entry points."""

from importlib import import_module
from importlib.metadata import entry_points
from typing import Any

from record_files.protocols import StorageProvider

PROVIDER_GROUP = "record_files.providers"

# Providers shipped with the package, available without installed metadata
BUILTIN_PROVIDERS = {
    "azure_blob": "record_files.backends.azure_blob:AzureBlobStorageProvider",
    "local": "record_files.backends.local:LocalStorageProvider",
}


def _load(target: str) -> Any:
    module_name, _, attr = target.partition(":")
    return getattr(import_module(module_name), attr)


def discover_providers() -> dict[str, Any]:
    """Discover all storage providers.

    Entry points registered under `record_files.providers` override the
    built-in providers of the same name.

    Returns:
        Dictionary mapping provider names to their classes
    """
    providers = {name: _load(target) for name, target in BUILTIN_PROVIDERS.items()}
    for ep in entry_points(group=PROVIDER_GROUP):
        providers[ep.name] = ep.load()
    return providers


def get_provider_class(name: str) -> Any:
    """Get a storage provider class by name.

    Raises:
        ValueError: If the provider is not found
    """
    providers = discover_providers()
    if name not in providers:
        available = ", ".join(sorted(providers.keys())) or "(none)"
        raise ValueError(f"Storage provider '{name}' not found. Available: {available}")
    return providers[name]


def create_storage_provider(name: str, **kwargs: Any) -> StorageProvider:
    """Create a StorageProvider instance.

    Args:
        name: The provider name (e.g., "azure_blob", "local")
        **kwargs: Provider-specific configuration

    Returns:
        A StorageProvider implementation
    """
    cls = get_provider_class(name)
    return cls(**kwargs)
