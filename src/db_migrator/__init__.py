"""db-migrator: versioned, lock-protected schema migrations for SQLAlchemy databases."""

__version__ = "0.1.0"

from .core.collection import MigrationCollection
from .core.db import DB
from .core.migration import Migration
from .core.runner import MigrationRunner, RunResult

__all__ = [
    "DB",
    "Migration",
    "MigrationCollection",
    "MigrationRunner",
    "RunResult",
    "__version__",
]
