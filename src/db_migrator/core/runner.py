"""Command state machine applying migrations against the ledger."""

import time
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import Engine

from ..utils.logging import audit_log
from .collection import MigrationCollection, find_migration, validate_migrations
from .db import DB
from .enums import Command, Direction
from .exceptions import (
    LedgerMissingError,
    MigrationFailedError,
    MissingArgumentError,
    UnsupportedCommandError,
)
from .ledger import VersionLedger
from .locking import LedgerTransaction, TransactionCoordinator
from .logging_utils import log_migration_applied, log_version_transition, runner_logger
from .migration import Action, Migration
from .templates import create_migration_file, format_migration_filename


@dataclass(frozen=True)
class RunResult:
    """Version transition produced by one command."""

    old_version: int
    new_version: int
    created_file: Path | None = None

    @property
    def changed(self) -> bool:
        return self.old_version != self.new_version


class MigrationRunner:
    """Runs migration commands for one collection against one database.

    Commands other than ``init`` and ``create`` run inside a locked ledger
    transaction. ``up`` and ``reset`` commit once per migration, so a failure
    leaves every earlier step applied and rolls back only the failing one.
    """

    def __init__(
        self,
        engine: Engine,
        collection: MigrationCollection,
        migrations_dir: str | Path = ".",
    ) -> None:
        """Initialize the runner.

        Args:
            engine: Database engine; also the ambient handle for actions that
                run outside the ledger transaction.
            collection: Registered migrations and the ledger table name.
            migrations_dir: Where ``create`` writes new migration files.
        """
        self.engine = engine
        self.collection = collection
        self.migrations_dir = Path(migrations_dir)
        self.ledger = VersionLedger(collection.table_name)
        self.coordinator = TransactionCoordinator(engine, self.ledger)
        self.db = DB(engine)

    def run(self, *args: str) -> RunResult:
        """Run a command given as plain strings, e.g. ``run("up", "3")``.

        Supported commands: ``init``, ``create <words...>``, ``version``,
        ``up [target]``, ``down``, ``reset``, ``set_version <n>``. Without
        arguments the command is ``up``.

        Raises:
            MigratorException: Subclasses describing the failed step.
        """
        migrations = self.collection.migrations()
        validate_migrations(migrations)

        name = args[0] if args else Command.UP.value
        try:
            command = Command(name)
        except ValueError:
            raise UnsupportedCommandError(name) from None
        rest = args[1:]

        if command is Command.INIT:
            return self.init()
        if command is Command.CREATE:
            return self.create(*rest)
        if command is Command.VERSION:
            return self.version()
        if command is Command.UP:
            target = _parse_version(rest[0], "up target") if rest else None
            return self.up(target, migrations=migrations)
        if command is Command.DOWN:
            return self.down(migrations=migrations)
        if command is Command.RESET:
            return self.reset(migrations=migrations)

        if not rest:
            raise MissingArgumentError(
                "set_version requires version as 2nd arg, e.g. set_version 42"
            )
        return self.set_version(_parse_version(rest[0], "set_version"))

    @audit_log("init")
    def init(self) -> RunResult:
        """Create the ledger schema and table if they are missing."""
        schema_exists = self.ledger.schema_exists(self.db)
        if schema_exists and self.ledger.table_exists(self.db):
            runner_logger.debug(
                f"Migration table {self.collection.table_name} already exists"
            )
            return RunResult(0, 0)

        self.ledger.create_table(self.db)
        runner_logger.info(
            f"Created migration table {self.collection.table_name}",
            table_name=self.collection.table_name,
            schema_created=not schema_exists,
        )
        return RunResult(0, 0)

    def create(self, *words: str) -> RunResult:
        """Write a migration template numbered after the last registered one."""
        return create_migration(self.collection, self.migrations_dir, *words)

    def current_version(self) -> int:
        """Read the current version inside a locked transaction."""
        return self.version().new_version

    def version(self) -> RunResult:
        with self._begin() as tx:
            version = tx.version
            tx.commit()
        return RunResult(version, version)

    @audit_log("up")
    def up(
        self, target: int | None = None, migrations: list[Migration] | None = None
    ) -> RunResult:
        """Apply every pending migration with a version up to ``target``."""
        migrations = self._snapshot(migrations)

        tx: LedgerTransaction | None = self._begin()
        old_version = new_version = tx.version
        try:
            if target is not None and old_version > target:
                tx.commit()
                return RunResult(old_version, old_version)

            for migration in migrations:
                if target is not None and migration.version > target:
                    break

                if tx is None:
                    tx = self._begin()
                if migration.version <= tx.version:
                    continue

                new_version = self._apply(
                    tx, migration, Direction.UP, old_version, new_version
                )
                tx.commit()
                tx = None

            if tx is not None:
                tx.commit()
                tx = None
        finally:
            if tx is not None:
                tx.close()

        log_version_transition(Command.UP.value, old_version, new_version)
        return RunResult(old_version, new_version)

    @audit_log("down")
    def down(self, migrations: list[Migration] | None = None) -> RunResult:
        """Revert the migration whose version equals the current version."""
        migrations = self._snapshot(migrations)

        with self._begin() as tx:
            old_version = tx.version
            new_version = self._down(tx, migrations, old_version, old_version)
            tx.commit()

        log_version_transition(Command.DOWN.value, old_version, new_version)
        return RunResult(old_version, new_version)

    @audit_log("reset")
    def reset(self, migrations: list[Migration] | None = None) -> RunResult:
        """Revert migrations one transaction at a time until nothing changes."""
        migrations = self._snapshot(migrations)

        old_version: int | None = None
        while True:
            with self._begin() as tx:
                version = tx.version
                if old_version is None:
                    old_version = version
                new_version = self._down(tx, migrations, version, old_version)
                tx.commit()
            if new_version == version:
                break

        log_version_transition(Command.RESET.value, old_version, new_version)
        return RunResult(old_version, new_version)

    @audit_log("set_version")
    def set_version(self, version: int) -> RunResult:
        """Record ``version`` as current without running any migration."""
        with self._begin() as tx:
            old_version = tx.version
            self.ledger.record_version(tx.db, version, ensure=False)
            tx.commit()

        log_version_transition(Command.SET_VERSION.value, old_version, version)
        return RunResult(old_version, version)

    def _snapshot(self, migrations: list[Migration] | None) -> list[Migration]:
        if migrations is None:
            migrations = self.collection.migrations()
            validate_migrations(migrations)
        return migrations

    def _begin(self) -> LedgerTransaction:
        if not self.ledger.table_exists(self.db):
            raise LedgerMissingError(self.collection.table_name)
        return self.coordinator.begin()

    def _down(
        self,
        tx: LedgerTransaction,
        migrations: list[Migration],
        version: int,
        old_version: int,
    ) -> int:
        if version == 0:
            return 0

        migration = find_migration(migrations, version)
        if migration is None:
            return version
        return self._apply(tx, migration, Direction.DOWN, old_version, version)

    def _apply(
        self,
        tx: LedgerTransaction,
        migration: Migration,
        direction: Direction,
        old_version: int,
        reached_version: int,
    ) -> int:
        """Run one action and record the resulting version in ``tx``.

        ``old_version`` and ``reached_version`` describe the run so far and
        are reported if the action fails.
        """
        transactional = migration.transactional(direction)
        action = migration.action(direction)
        new_version = (
            migration.version if direction is Direction.UP else migration.version - 1
        )

        start = time.time()
        try:
            if action is not None:
                self._run_action(tx, action, transactional)
            self.ledger.record_version(tx.db, new_version, ensure=False)
        except Exception as e:
            runner_logger.error(
                f"Migration {migration.version} {direction.value} failed",
                exception=e,
                migration=migration.version,
                direction=direction.value,
            )
            raise MigrationFailedError(
                migration.version, direction.value, old_version, reached_version, e
            ) from e

        log_migration_applied(
            migration.version,
            direction.value,
            transactional,
            new_version,
            time.time() - start,
        )
        return new_version

    def _run_action(
        self, tx: LedgerTransaction, action: Action, transactional: bool
    ) -> None:
        if transactional:
            action(tx.db)
        elif tx.single_writer:
            # The ledger transaction holds the only write lock.
            with tx.suspended():
                action(self.db)
        else:
            action(self.db)


def _parse_version(value: str, what: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise MissingArgumentError(
            f"{what} requires a numeric version, got {value!r}",
            context={"value": value},
        ) from None


def create_migration(
    collection: MigrationCollection, migrations_dir: str | Path, *words: str
) -> RunResult:
    """Write a migration template numbered after the last registered one.

    Needs no database, so it can run before a connection is configured.

    Raises:
        MissingArgumentError: If no description words are given.
        TemplateExistsError: If the file already exists.
    """
    if not words:
        raise MissingArgumentError("please provide migration description")

    description = " ".join(words)
    version = collection.last_version() + 1
    filename = format_migration_filename(version, "_".join(words))
    path = create_migration_file(Path(migrations_dir), filename, description)

    runner_logger.info(f"Created new migration {path}", path=str(path))
    return RunResult(0, 0, created_file=path)
