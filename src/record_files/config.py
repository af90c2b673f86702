"""Configuration loading with environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from record_files.exceptions import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

# Well-known environment key holding the storage account connection string
STORAGE_CONNECTION_STRING_NAME = "MS_AzureStorageAccountConnectionString"


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


def get_connection_string(name: str = STORAGE_CONNECTION_STRING_NAME) -> str:
    """Look up the storage connection string by its environment key.

    Args:
        name: Environment variable holding the connection string

    Returns:
        The connection string

    Raises:
        ConfigError: If the name is empty or the variable is missing/empty
    """
    if not name:
        raise ConfigError("Connection string name may not be empty")

    value = os.environ.get(name)
    if not value:
        raise ConfigError(
            f"No storage connection string found in environment variable '{name}'"
        )
    return value


class StorageConfig(BaseModel):
    """Storage provider configuration."""

    provider: str = "azure_blob"  # azure_blob | local
    connection_string_name: str = STORAGE_CONNECTION_STRING_NAME
    token_validity_minutes: int = Field(default=60, gt=0)
    base_url: str | None = None  # For local provider


class ContainerConfig(BaseModel):
    """Container naming configuration."""

    prefix: str = ""
    suffix: str = ""


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json | text


class Config(BaseModel):
    """Main configuration for record-files."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    containers: ContainerConfig = Field(default_factory=ContainerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        data = substitute_env_vars(data or {})
        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        return cls.model_validate(data)
