"""
Pytest configuration and shared fixtures for db-migrator tests.
"""

# Add src to path for imports
import logging
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from db_migrator.core.collection import MigrationCollection
from db_migrator.core.runner import MigrationRunner
from db_migrator.database import DatabaseManager


@pytest.fixture
def reset_logging() -> Generator[None, None, None]:
    """Remove handlers added during a test and restore the root level."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level

    yield

    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def database_url(temp_dir: Path) -> str:
    """URL of a SQLite database file inside the temporary directory."""
    return f"sqlite:///{temp_dir / 'test.db'}"


@pytest.fixture
def db_manager(database_url: str) -> Generator[DatabaseManager, None, None]:
    """Database manager for the temporary SQLite file."""
    manager = DatabaseManager(database_url)
    yield manager
    manager.close()


@pytest.fixture
def engine(db_manager: DatabaseManager) -> Engine:
    """Engine for the temporary SQLite file."""
    return db_manager.engine


@pytest.fixture
def migrations_dir(temp_dir: Path) -> Path:
    """Empty directory for migration files."""
    path = temp_dir / "migrations"
    path.mkdir()
    return path


@pytest.fixture
def collection() -> MigrationCollection:
    """Empty collection without discovery directories."""
    return MigrationCollection()


@pytest.fixture
def runner(
    engine: Engine, collection: MigrationCollection, migrations_dir: Path
) -> MigrationRunner:
    """Runner whose ledger table has already been created."""
    runner = MigrationRunner(engine, collection, migrations_dir)
    runner.init()
    return runner
