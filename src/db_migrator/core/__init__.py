"""Migration engine: registry, ledger, locking and the command runner."""

from .collection import MigrationCollection, validate_migrations, version_from_path
from .db import DB
from .ledger import VersionLedger
from .locking import LedgerTransaction, TransactionCoordinator
from .migration import Migration
from .runner import MigrationRunner, RunResult
from .sql import SQLAction, parse_statements

__all__ = [
    "DB",
    "LedgerTransaction",
    "Migration",
    "MigrationCollection",
    "MigrationRunner",
    "RunResult",
    "SQLAction",
    "TransactionCoordinator",
    "VersionLedger",
    "parse_statements",
    "validate_migrations",
    "version_from_path",
]
