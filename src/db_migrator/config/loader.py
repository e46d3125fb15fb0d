"""Configuration loading and management."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..core.collection import DEFAULT_TABLE_NAME
from ..utils.logging import ConfigurationError

ENV_PREFIX = "DB_MIGRATOR_"


class MigratorConfig(BaseModel):
    """Configuration model for db-migrator."""

    # Database
    database_url: str | None = Field(
        default=None, description="SQLAlchemy database URL"
    )
    echo: bool = Field(default=False, description="Echo SQL statements")

    # Migrations
    table_name: str = Field(
        default=DEFAULT_TABLE_NAME,
        description="Ledger table, optionally qualified as schema.table",
    )
    migrations_dir: str = Field(
        default=".", description="Directory holding migration files"
    )
    sql_autodiscover: bool = Field(
        default=True, description="Scan migrations_dir for migrations on every run"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str | None = Field(default=None, description="Log file path")
    structured_logging: bool = Field(
        default=False, description="Emit JSON log lines"
    )


def find_config_file(custom_path: str | None = None) -> Path | None:
    """Find configuration file in standard locations."""
    if custom_path:
        path = Path(custom_path).expanduser()
        if path.exists():
            return path
        raise ConfigurationError(f"Config file not found: {custom_path}")

    search_paths = [
        Path.cwd() / "db-migrator.yaml",
        Path.cwd() / "db-migrator.yml",
        Path.home() / ".config" / "db-migrator" / "config.yaml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return data


def load_env_vars() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    env_mappings = {
        f"{ENV_PREFIX}DATABASE_URL": "database_url",
        f"{ENV_PREFIX}ECHO": "echo",
        f"{ENV_PREFIX}TABLE_NAME": "table_name",
        f"{ENV_PREFIX}MIGRATIONS_DIR": "migrations_dir",
        f"{ENV_PREFIX}SQL_AUTODISCOVER": "sql_autodiscover",
        f"{ENV_PREFIX}LOG_LEVEL": "log_level",
        f"{ENV_PREFIX}LOG_FILE": "log_file",
        f"{ENV_PREFIX}STRUCTURED_LOGGING": "structured_logging",
    }
    bool_keys = {"echo", "sql_autodiscover", "structured_logging"}

    for env_var, config_key in env_mappings.items():
        if env_var in os.environ:
            env_value = os.environ[env_var]
            if config_key in bool_keys:
                config[config_key] = env_value.lower() in ("true", "1", "yes", "on")
            else:
                config[config_key] = env_value

    return config


def load_config(
    config_path: str | None = None,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> MigratorConfig:
    """Load configuration from file and environment variables.

    Precedence order (highest to lowest):
    1. CLI flag overrides
    2. Environment variables
    3. Configuration file (with profile support)
    4. Default values
    """
    config_data: dict[str, Any] = {}

    config_file = find_config_file(config_path)
    if config_file:
        file_data = load_config_file(config_file)
        config_data.update({k: v for k, v in file_data.items() if k != "profiles"})

        profiles = file_data.get("profiles") or {}
        if profile:
            if profile not in profiles:
                raise ConfigurationError(
                    f"Profile {profile!r} not found in {config_file}",
                    context={"profile": profile, "config_file": str(config_file)},
                )
            config_data.update(profiles[profile])

    config_data.update(load_env_vars())

    if cli_overrides:
        config_data.update({k: v for k, v in cli_overrides.items() if v is not None})

    try:
        return MigratorConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
