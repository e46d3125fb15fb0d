"""Append-only ledger of applied schema versions."""

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    func,
    inspect,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateSchema

from .collection import DEFAULT_SCHEMA, DEFAULT_TABLE_NAME, split_table_name
from .db import DB
from .exceptions import LedgerError
from .logging_utils import ledger_logger


class VersionLedger:
    """Reads and appends rows of the migrations table.

    The current version is the ``version`` of the row with the highest ``id``,
    so insertion order rather than the largest version wins. An empty table
    reads as version 0.
    """

    def __init__(self, table_name: str = DEFAULT_TABLE_NAME) -> None:
        """Initialize the ledger.

        Args:
            table_name: Table name, optionally qualified as ``schema.table``.
        """
        self.table_name = table_name
        schema, self.name = split_table_name(table_name)

        self.metadata = MetaData()
        self.table = Table(
            self.name,
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("version", BigInteger, nullable=False),
            Column(
                "created_at",
                DateTime(timezone=True),
                nullable=False,
                server_default=func.now(),
            ),
            # The default schema resolves through the connection's search path.
            schema=None if schema == DEFAULT_SCHEMA else schema,
        )

    def create_table(self, db: DB) -> None:
        """Create the schema and the table if they do not exist yet."""
        try:
            with db.connect() as conn:
                if self.table.schema is not None:
                    conn.execute(CreateSchema(self.table.schema, if_not_exists=True))
                self.table.create(conn, checkfirst=True)
        except SQLAlchemyError as e:
            raise LedgerError(
                f"Failed to create migration table {self.table_name}: {e}",
                context={"table_name": self.table_name},
            ) from e
        ledger_logger.debug(f"Ensured table {self.table_name}", table=self.table_name)

    def table_exists(self, db: DB) -> bool:
        with db.connect() as conn:
            return inspect(conn).has_table(self.name, schema=self.table.schema)

    def schema_exists(self, db: DB) -> bool:
        if self.table.schema is None:
            return True
        with db.connect() as conn:
            return inspect(conn).has_schema(self.table.schema)

    def current_version(self, db: DB, ensure: bool = True) -> int:
        """Return the most recently recorded version, or 0.

        Args:
            db: Database handle.
            ensure: Create the table first if it is missing.
        """
        if ensure:
            self.create_table(db)

        query = select(self.table.c.version).order_by(self.table.c.id.desc()).limit(1)
        try:
            with db.connect() as conn:
                version = conn.execute(query).scalar()
        except SQLAlchemyError as e:
            raise LedgerError(
                f"Failed to read version from {self.table_name}: {e}",
                context={"table_name": self.table_name},
            ) from e
        return int(version) if version is not None else 0

    def record_version(self, db: DB, version: int, ensure: bool = True) -> None:
        """Append ``version`` as the new current version.

        No relation to the previous version is enforced, which is what makes
        jumps and repeats through ``set_version`` possible.
        """
        if ensure:
            self.create_table(db)

        try:
            with db.connect() as conn:
                conn.execute(insert(self.table).values(version=version))
        except SQLAlchemyError as e:
            raise LedgerError(
                f"Failed to record version {version} in {self.table_name}: {e}",
                context={"table_name": self.table_name, "version": version},
            ) from e
        ledger_logger.debug(f"Recorded version {version}", version_recorded=version)

    def __repr__(self) -> str:
        return f"<VersionLedger(table={self.table_name!r})>"
