"""Database engine construction."""

import os
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from ..core.db import enable_sqlite_transactions
from ..utils.logging import ConfigurationError

DATABASE_URL_ENV = "DB_MIGRATOR_DATABASE_URL"


class DatabaseManager:
    """Owns the SQLAlchemy engine migrations run against."""

    def __init__(
        self,
        database_url: str | None = None,
        echo: bool = False,
        pool_pre_ping: bool = True,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
    ) -> None:
        """Initialize database manager.

        Args:
            database_url: Database connection URL. Falls back to the
                ``DB_MIGRATOR_DATABASE_URL`` environment variable.
            echo: Whether to echo SQL statements.
            pool_pre_ping: Whether to enable pool pre-ping for connection validation.
            pool_size: Number of connections to maintain in the pool.
            max_overflow: Maximum number of overflow connections.
            pool_timeout: Timeout for getting a connection from the pool, also
                used as the SQLite busy timeout.
            pool_recycle: Time in seconds to recycle connections.

        Raises:
            ConfigurationError: If no URL is given or configured.
        """
        self.database_url = database_url or os.getenv(DATABASE_URL_ENV)
        if not self.database_url:
            raise ConfigurationError(
                "database URL is not configured; pass --database-url or set "
                f"{DATABASE_URL_ENV}"
            )
        self.echo = echo
        self.pool_pre_ping = pool_pre_ping
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.pool_recycle = pool_recycle

        self._engine: Engine | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        """Get the database engine, creating it if necessary."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> Engine:
        """Create the database engine with appropriate configuration."""
        engine_kwargs: dict[str, Any] = {
            "echo": self.echo,
            "pool_pre_ping": self.pool_pre_ping,
        }

        if self.is_sqlite:
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": self.pool_timeout,
            }
            # An in-memory database only exists on its one connection
            if ":memory:" in self.database_url or self.database_url in (
                "sqlite://",
                "sqlite+pysqlite://",
            ):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(
                {
                    "pool_size": self.pool_size,
                    "max_overflow": self.max_overflow,
                    "pool_timeout": self.pool_timeout,
                    "pool_recycle": self.pool_recycle,
                }
            )

        engine = create_engine(self.database_url, **engine_kwargs)

        if self.is_sqlite:

            @event.listens_for(engine, "connect")
            def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
                dbapi_connection.isolation_level = None
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()

            enable_sqlite_transactions(engine)

        return engine

    def close(self) -> None:
        """Close database connections."""
        if self._engine:
            self._engine.dispose()
            self._engine = None

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
