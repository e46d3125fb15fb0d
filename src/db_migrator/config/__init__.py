"""Configuration management module."""

from .loader import MigratorConfig, find_config_file, load_config

__all__ = ["MigratorConfig", "find_config_file", "load_config"]
