"""Ordered, deduplicated collection of migrations."""

import bisect
import importlib.util
import threading
from collections.abc import Iterable
from pathlib import Path
from types import ModuleType

from .exceptions import (
    BadFileNameError,
    DuplicateDirectionError,
    DuplicateVersionError,
    InvalidMigrationError,
)
from .logging_utils import log_discovery, registry_logger
from .migration import Action, Migration
from .sql import SQLAction

DEFAULT_TABLE_NAME = "gopg_migrations"
DEFAULT_SCHEMA = "public"

# (suffix, direction, transactional), longest suffix first
SQL_VARIANTS = (
    (".tx.up.sql", "up", True),
    (".tx.down.sql", "down", True),
    (".up.sql", "up", False),
    (".down.sql", "down", False),
)


def split_table_name(table_name: str) -> tuple[str, str]:
    """Return ``(schema, table)``; the schema defaults to ``public``."""
    schema, sep, table = table_name.partition(".")
    if sep:
        return schema, table
    return DEFAULT_SCHEMA, table_name


def split_version(file_name: str) -> tuple[int, str]:
    """Split ``<version>_<rest>`` into its version and the rest.

    Raises:
        BadFileNameError: If there is no underscore or the prefix is not a
            positive integer.
    """
    prefix, sep, rest = file_name.partition("_")
    if not sep:
        raise BadFileNameError(
            file_name, "must have name in format version_comment, e.g. 1_initial"
        )
    if not (prefix.isascii() and prefix.isdigit()) or int(prefix) < 1:
        raise BadFileNameError(
            file_name, f"must start with a positive version number, got {prefix!r}"
        )
    return int(prefix), rest


def version_from_path(path: str | Path) -> int:
    """Extract the version from a ``<version>_<label>.py`` migration module path."""
    name = Path(path).name
    if not name.endswith(".py"):
        raise BadFileNameError(name, "must have extension .py")
    version, _ = split_version(name)
    return version


def find_migration(migrations: Iterable[Migration], version: int) -> Migration | None:
    """Return the migration with exactly ``version``, or None."""
    for migration in migrations:
        if migration.version == version:
            return migration
    return None


def validate_migrations(migrations: Iterable[Migration]) -> None:
    """Raise ``DuplicateVersionError`` if two migrations share a version."""
    seen: set[int] = set()
    for migration in migrations:
        if migration.version in seen:
            raise DuplicateVersionError(migration.version)
        seen.add(migration.version)


class MigrationCollection:
    """Migrations sorted by version, plus where to find more of them.

    Registration may happen from several threads while a process starts up,
    so the list and the visited-directory sets are guarded by a lock.
    """

    def __init__(
        self,
        *migrations: Migration,
        table_name: str = DEFAULT_TABLE_NAME,
        directories: Iterable[str | Path] = (),
        autodiscover: bool = True,
    ) -> None:
        """Initialize the collection.

        Args:
            migrations: Migrations to register up front.
            table_name: Ledger table, optionally qualified as ``schema.table``.
            directories: Directories scanned for SQL and Python migrations
                whenever a snapshot is taken.
            autodiscover: Scan ``directories`` when taking a snapshot.
        """
        self.table_name = table_name
        self.directories = [Path(d) for d in directories]
        self.autodiscover = autodiscover

        self._lock = threading.Lock()
        self._migrations: list[Migration] = []
        self._visited_sql_dirs: set[Path] = set()
        self._visited_python_dirs: set[Path] = set()

        for migration in migrations:
            self.add_migration(migration)

    def schema_table_name(self) -> tuple[str, str]:
        """Return ``(schema, table)`` of the ledger table."""
        return split_table_name(self.table_name)

    # Registration

    def register(
        self, version: int, up: Action, down: Action | None = None
    ) -> Migration:
        """Register a migration whose actions run outside the ledger transaction."""
        _require_up(version, up)
        return self.add_migration(Migration(version=version, up=up, down=down))

    def register_tx(
        self, version: int, up: Action, down: Action | None = None
    ) -> Migration:
        """Register a migration whose actions run inside the ledger transaction."""
        _require_up(version, up)
        return self.add_migration(
            Migration(version=version, up=up, down=down, up_tx=True, down_tx=True)
        )

    def add_migration(self, migration: Migration) -> Migration:
        """Insert a migration keeping the collection ordered.

        Raises:
            InvalidMigrationError: For a non-positive version or a non-callable action.
            DuplicateVersionError: If the version is already registered.
        """
        _check_migration(migration)
        with self._lock:
            self._check_free([migration.version])
            self._insert(migration)
        return migration

    def _check_free(self, versions: Iterable[int]) -> None:
        """Caller must hold the lock."""
        registered = {m.version for m in self._migrations}
        for version in versions:
            if version in registered:
                raise DuplicateVersionError(version)

    def _insert(self, migration: Migration) -> None:
        """Caller must hold the lock."""
        keys = [m.version for m in self._migrations]
        index = bisect.bisect_right(keys, migration.version)
        self._migrations.insert(index, migration)

    def _insert_all(
        self, migrations: list[Migration], visited: set[Path], directory: Path
    ) -> bool:
        """Register a discovered batch and mark its directory visited."""
        with self._lock:
            if directory in visited:
                return False
            self._check_free(m.version for m in migrations)
            for migration in migrations:
                self._insert(migration)
            visited.add(directory)
        return True

    # Discovery

    def discover_sql_migrations(self, directory: str | Path) -> list[Migration]:
        """Add the SQL migrations found in ``directory``.

        Files are matched against ``<version>_<label>.<variant>.sql`` where the
        variant is one of ``up``, ``down``, ``tx.up`` or ``tx.down``. Every
        file is read and parsed before anything is registered, so an error
        leaves the collection unchanged. A directory is scanned at most once.

        Returns:
            The migrations added by this call.
        """
        directory = Path(directory).resolve()
        with self._lock:
            if directory in self._visited_sql_dirs:
                return []
        if not directory.is_dir():
            return []

        found: dict[int, dict] = {}
        for path in sorted(p for p in directory.iterdir() if p.is_file()):
            name = path.name
            if not name.endswith(".sql"):
                continue

            version, rest = split_version(name)
            for suffix, direction, transactional in SQL_VARIANTS:
                if rest.endswith(suffix):
                    break
            else:
                raise BadFileNameError(
                    name, "must have extension .up.sql or .down.sql"
                )

            fields = found.setdefault(
                version, {"version": version, "label": rest[: -len(suffix)]}
            )
            if direction in fields:
                raise DuplicateDirectionError(version, direction)
            fields[direction] = SQLAction.from_file(path)
            fields[f"{direction}_tx"] = transactional

        migrations = [Migration(**fields) for _, fields in sorted(found.items())]
        if not self._insert_all(migrations, self._visited_sql_dirs, directory):
            return []

        log_discovery(directory, "sql", [m.version for m in migrations])
        return migrations

    def discover_python_migrations(self, directory: str | Path) -> list[Migration]:
        """Add the Python migration modules found in ``directory``.

        Each ``<version>_<label>.py`` module must define ``up(db)`` and may
        define ``down(db)`` and ``TRANSACTIONAL`` (default ``True``). Modules
        whose name does not start with a digit are helpers and are skipped.

        Returns:
            The migrations added by this call.
        """
        directory = Path(directory).resolve()
        with self._lock:
            if directory in self._visited_python_dirs:
                return []
        if not directory.is_dir():
            return []

        migrations = []
        for path in sorted(directory.glob("*.py")):
            if not path.name[0].isdigit():
                continue
            migrations.append(self._load_python_migration(path))

        validate_migrations(migrations)
        if not self._insert_all(migrations, self._visited_python_dirs, directory):
            return []

        log_discovery(directory, "python", [m.version for m in migrations])
        return migrations

    def _load_python_migration(self, path: Path) -> Migration:
        """Import a migration module from its path."""
        version = version_from_path(path)
        module = _import_module(path)

        up = getattr(module, "up", None)
        if not callable(up):
            raise InvalidMigrationError(
                f"migration module {path.name} must define up(db)",
                context={"path": str(path)},
            )
        down = getattr(module, "down", None)
        if down is not None and not callable(down):
            raise InvalidMigrationError(
                f"migration module {path.name} defines down but it is not callable",
                context={"path": str(path)},
            )
        transactional = bool(getattr(module, "TRANSACTIONAL", True))

        return Migration(
            version=version,
            up=up,
            down=down,
            up_tx=transactional,
            down_tx=transactional,
            label=path.stem.partition("_")[2],
        )

    def discover(self, directory: str | Path) -> list[Migration]:
        """Discover both SQL and Python migrations in ``directory``."""
        found = self.discover_sql_migrations(directory)
        return found + self.discover_python_migrations(directory)

    # Reading

    def migrations(self) -> list[Migration]:
        """Return a snapshot of the collection in version order.

        Configured directories are scanned first unless autodiscovery is
        disabled. Later changes to the collection do not affect the returned
        list.
        """
        if self.autodiscover:
            for directory in self.directories:
                self.discover(directory)

        with self._lock:
            return list(self._migrations)

    def last_version(self) -> int:
        """Highest registered version, or 0 for an empty collection."""
        migrations = self.migrations()
        return migrations[-1].version if migrations else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._migrations)

    def __repr__(self) -> str:
        return (
            f"<MigrationCollection(table={self.table_name!r}, "
            f"migrations={len(self)})>"
        )


def _require_up(version: int, up: Action) -> None:
    if not callable(up):
        raise InvalidMigrationError(
            f"migration={version} requires an up action", context={"version": version}
        )


def _check_migration(migration: Migration) -> None:
    if isinstance(migration.version, bool) or not isinstance(migration.version, int):
        raise InvalidMigrationError(
            f"migration version must be an integer, got {migration.version!r}"
        )
    if migration.version < 1:
        raise InvalidMigrationError(
            f"migration version must be positive, got {migration.version}",
            context={"version": migration.version},
        )
    for name in ("up", "down"):
        action = getattr(migration, name)
        if action is not None and not callable(action):
            raise InvalidMigrationError(
                f"migration={migration.version} {name} action is not callable",
                context={"version": migration.version},
            )


def _import_module(path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(
        f"db_migrator_migration_{path.stem}", path
    )
    if spec is None or spec.loader is None:
        raise InvalidMigrationError(
            f"cannot import migration module {path.name}", context={"path": str(path)}
        )

    module = importlib.util.module_from_spec(spec)
    registry_logger.debug(f"Loading migration module {path}", path=str(path))
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise InvalidMigrationError(
            f"failed to import migration module {path.name}: {e}",
            context={"path": str(path)},
        ) from e
    return module

