#!/usr/bin/env python3
"""
Example usage of db-migrator as a library.

This file demonstrates:
- Registering migrations in code
- Mixing transactional and non-transactional actions
- Running commands and reading the version transition
- Handling a failed migration

Run it with a command, e.g. ``python examples/basic_usage.py up``.
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from db_migrator import MigrationCollection, MigrationRunner
from db_migrator.database import DatabaseManager
from db_migrator.utils.logging import LogLevel, MigratorException, setup_logging


def create_users(db):
    db.exec_sql("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")


def drop_users(db):
    db.exec_sql("DROP TABLE users")


def add_admin(db):
    db.execute("INSERT INTO users (name) VALUES (:name)", {"name": "admin"})


def remove_admin(db):
    db.execute("DELETE FROM users WHERE name = :name", {"name": "admin"})


def build_collection() -> MigrationCollection:
    """Collection with one schema change and one data change."""
    collection = MigrationCollection(table_name="example_migrations")
    collection.register(1, create_users, drop_users)
    # Data changes are recorded atomically with their version
    collection.register_tx(2, add_admin, remove_admin)
    return collection


def main():
    """Run the command given on the command line against a local database."""
    setup_logging(log_level=LogLevel.INFO)

    args = sys.argv[1:] or ["up"]
    with DatabaseManager("sqlite:///example.db") as db_manager:
        runner = MigrationRunner(db_manager.engine, build_collection())
        runner.init()

        try:
            result = runner.run(*args)
        except MigratorException as e:
            print(f"error: {e.message}", file=sys.stderr)
            sys.exit(1)

    if result.changed:
        print(f"migrated from version {result.old_version} to {result.new_version}")
    else:
        print(f"version is {result.new_version}")


if __name__ == "__main__":
    main()
