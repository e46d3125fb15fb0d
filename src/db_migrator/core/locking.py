"""Locked ledger transactions.

Every command that reads or writes the ledger runs inside a transaction that
holds an exclusive lock on the ledger table, so two processes cannot both read
the same current version and apply the same step twice. Engines without
table locks fall back to an unlocked transaction. On SQLite the transaction
starts with ``BEGIN IMMEDIATE``, which takes the database write lock instead.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.engine import Connection, Engine, RootTransaction
from sqlalchemy.exc import SQLAlchemyError

from .db import DB, SQLITE_BEGIN_OPTION, enable_sqlite_transactions
from .exceptions import LockError
from .ledger import VersionLedger
from .logging_utils import lock_logger, log_lock_fallback

COCKROACHDB_LOCK_ERROR = 'at or near "lock"'
YUGABYTEDB_LOCK_ERROR = "lock mode not supported yet"
SQLITE_LOCK_ERROR = 'near "LOCK": syntax error'

UNSUPPORTED_LOCK_ERRORS = (
    COCKROACHDB_LOCK_ERROR,
    YUGABYTEDB_LOCK_ERROR,
    SQLITE_LOCK_ERROR,
)

DISABLE_IDLE_TIMEOUT = "SET idle_in_transaction_session_timeout = 0"
SQLITE_BEGIN = "BEGIN IMMEDIATE"


def error_text(error: Exception) -> str:
    """Message of the underlying DBAPI error, without the SQL echo."""
    return str(getattr(error, "orig", None) or error)


def lock_unsupported(error: Exception) -> bool:
    """Whether ``error`` says the engine has no table-level locks."""
    message = error_text(error)
    return any(match in message for match in UNSUPPORTED_LOCK_ERRORS)


class LedgerTransaction:
    """An open transaction on one connection, with the ledger version read."""

    def __init__(
        self,
        connection: Connection,
        transaction: RootTransaction,
        version: int,
        locked: bool,
    ) -> None:
        self.connection = connection
        self.transaction = transaction
        self.version = version
        self.locked = locked
        self.db = DB(connection, in_transaction=True)

    @property
    def active(self) -> bool:
        return self.transaction.is_active

    @property
    def single_writer(self) -> bool:
        """Whether the open transaction blocks writes from other connections."""
        return self.connection.dialect.name == "sqlite"

    @contextmanager
    def suspended(self) -> Generator[None, None, None]:
        """Commit what the transaction holds so far and begin again after the block.

        Statements on other connections can write inside the block. If the
        block raises, no new transaction is begun and ``close`` only releases
        the connection.
        """
        self.transaction.commit()
        yield
        self.transaction = self.connection.begin()

    def commit(self) -> None:
        """Commit and release the connection."""
        try:
            self.transaction.commit()
        finally:
            self.connection.close()

    def rollback(self) -> None:
        """Roll back and release the connection."""
        try:
            if self.transaction.is_active:
                self.transaction.rollback()
        finally:
            self.connection.close()

    def close(self) -> None:
        """Release the connection, rolling back anything uncommitted."""
        if not self.connection.closed:
            self.rollback()

    def __enter__(self) -> "LedgerTransaction":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class TransactionCoordinator:
    """Opens locked transactions on the ledger table."""

    def __init__(self, engine: Engine, ledger: VersionLedger) -> None:
        self.engine = engine
        self.ledger = ledger
        enable_sqlite_transactions(engine)

    def begin(self) -> LedgerTransaction:
        """Begin a transaction, lock the ledger and read the current version.

        Raises:
            LockError: If the transaction cannot be opened or the lock fails
                for a reason other than missing engine support.
            LedgerError: If the version cannot be read.
        """
        try:
            connection = self.engine.connect()
        except SQLAlchemyError as e:
            raise LockError(f"Failed to connect: {e}") from e
        if connection.dialect.name == "sqlite":
            connection.execution_options(**{SQLITE_BEGIN_OPTION: SQLITE_BEGIN})

        try:
            transaction = self._begin(connection)
            transaction = self._disable_idle_timeout(connection, transaction)
            transaction, locked = self._lock_table(connection, transaction)
            version = self.ledger.current_version(
                DB(connection, in_transaction=True), ensure=False
            )
        except Exception:
            connection.close()
            raise

        lock_logger.debug(
            f"Opened ledger transaction at version {version}",
            locked=locked,
            current_version=version,
        )
        return LedgerTransaction(connection, transaction, version, locked)

    def _begin(self, connection: Connection) -> RootTransaction:
        try:
            return connection.begin()
        except SQLAlchemyError as e:
            raise LockError(f"Failed to begin transaction: {e}") from e

    def _disable_idle_timeout(
        self, connection: Connection, transaction: RootTransaction
    ) -> RootTransaction:
        # Not every engine has this setting (PostgreSQL < 9.6, SQLite, ...).
        try:
            connection.exec_driver_sql(DISABLE_IDLE_TIMEOUT)
        except SQLAlchemyError as e:
            lock_logger.debug(
                "Idle transaction timeout not supported, continuing without it",
                reason=error_text(e),
            )
            transaction.rollback()
            return self._begin(connection)
        return transaction

    def _lock_table(
        self, connection: Connection, transaction: RootTransaction
    ) -> tuple[RootTransaction, bool]:
        table = connection.dialect.identifier_preparer.format_table(self.ledger.table)
        try:
            connection.exec_driver_sql(f"LOCK TABLE {table} IN EXCLUSIVE MODE")
        except SQLAlchemyError as e:
            transaction.rollback()
            if not lock_unsupported(e):
                raise LockError(
                    f"Failed to lock table {self.ledger.table_name}: {e}",
                    context={"table_name": self.ledger.table_name},
                ) from e
            if connection.dialect.name == "sqlite":
                lock_logger.debug("Relying on the SQLite write lock taken by BEGIN")
            else:
                log_lock_fallback(self.ledger.table_name, error_text(e))
            return self._begin(connection), False
        return transaction, True
