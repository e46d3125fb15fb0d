"""Shared enums for db-migrator."""

from enum import Enum


class Command(Enum):
    """Commands understood by the migration runner."""

    INIT = "init"
    CREATE = "create"
    VERSION = "version"
    UP = "up"
    DOWN = "down"
    RESET = "reset"
    SET_VERSION = "set_version"


class Direction(Enum):
    """Direction a migration action moves the schema."""

    UP = "up"
    DOWN = "down"
