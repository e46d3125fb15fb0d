"""Database handle passed to migration actions and the ledger."""

from collections.abc import Generator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import Connection, Dialect, Engine
from sqlalchemy.sql import Executable


class DB:
    """Thin wrapper over a SQLAlchemy engine or connection.

    A handle is in one of three modes:

    - ambient: bound to an ``Engine``; every call checks out a connection and
      commits when it is done.
    - dedicated: bound to a ``Connection`` outside any transaction; every call
      commits on that same connection.
    - transactional: bound to a ``Connection`` with an open transaction owned
      by the caller; nothing is committed here.

    Whether a handle is transactional is stated explicitly through
    ``in_transaction`` rather than inferred from the bind's type.
    """

    def __init__(self, bind: Engine | Connection, in_transaction: bool = False) -> None:
        if in_transaction and not isinstance(bind, Connection):
            raise ValueError("a transactional handle must be bound to a Connection")
        self.bind = bind
        self.in_transaction = in_transaction

    @property
    def dialect(self) -> Dialect:
        return self.bind.dialect

    @contextmanager
    def connect(self) -> Generator[Connection, None, None]:
        """Yield a connection for a unit of work.

        Ambient and dedicated handles commit when the block exits cleanly.
        """
        if isinstance(self.bind, Engine):
            with self.bind.begin() as conn:
                yield conn
            return

        yield self.bind
        if not self.in_transaction:
            self.bind.commit()

    @contextmanager
    def dedicated(self) -> Generator["DB", None, None]:
        """Yield a handle pinned to a single connection.

        Session state set by one statement (``SET ...``) is visible to the
        next one executed through the yielded handle.
        """
        if isinstance(self.bind, Connection):
            yield self
            return

        with self.bind.connect() as conn:
            yield DB(conn)

    def execute(
        self, statement: str | Executable, parameters: Mapping[str, Any] | None = None
    ) -> None:
        """Execute a SQL expression or a textual statement with bind parameters."""
        if isinstance(statement, str):
            statement = text(statement)
        with self.connect() as conn:
            conn.execute(statement, dict(parameters or {}))

    def exec_sql(self, sql: str) -> None:
        """Execute raw SQL through the driver without bind-parameter parsing."""
        with self.connect() as conn:
            conn.exec_driver_sql(sql)

    def __repr__(self) -> str:
        mode = "transactional" if self.in_transaction else (
            "ambient" if isinstance(self.bind, Engine) else "dedicated"
        )
        return f"<DB({mode}, dialect={self.dialect.name!r})>"


SQLITE_BEGIN_OPTION = "sqlite_begin"


def _sqlite_connect(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.isolation_level = None


def _sqlite_begin(conn: Connection) -> None:
    # Connections pooled before the listeners were added still have the
    # driver's own transaction handling switched on.
    driver_connection = conn.connection.driver_connection
    if driver_connection.isolation_level is not None:
        driver_connection.isolation_level = None
    conn.exec_driver_sql(conn.get_execution_options().get(SQLITE_BEGIN_OPTION, "BEGIN"))


def enable_sqlite_transactions(engine: Engine) -> None:
    """Let SQLAlchemy decide where SQLite transactions begin.

    The sqlite3 driver only opens a transaction before INSERT, UPDATE and
    DELETE, so DDL would commit on its own. With these listeners every
    ``begin()`` emits ``BEGIN`` (or the statement set through the
    ``sqlite_begin`` execution option), and schema changes roll back with
    the rest of the transaction. Other dialects are left alone; calling this
    twice on one engine is harmless.
    """
    if engine.dialect.name != "sqlite":
        return
    listeners = (("connect", _sqlite_connect), ("begin", _sqlite_begin))
    for identifier, listener in listeners:
        if not event.contains(engine, identifier, listener):
            event.listen(engine, identifier, listener)
