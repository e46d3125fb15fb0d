"""Tests for the migration collection and file discovery."""

import threading

import pytest

from db_migrator.core.collection import (
    MigrationCollection,
    find_migration,
    split_table_name,
    split_version,
    validate_migrations,
    version_from_path,
)
from db_migrator.core.exceptions import (
    BadFileNameError,
    DuplicateDirectionError,
    DuplicateVersionError,
    InvalidMigrationError,
    UnknownDirectiveError,
)
from db_migrator.core.migration import Migration
from db_migrator.core.sql import SQLAction


def noop(db):
    pass


class TestHelpers:
    """Test module-level helpers."""

    def test_split_table_name_default_schema(self):
        """Test an unqualified name lives in the public schema."""
        assert split_table_name("gopg_migrations") == ("public", "gopg_migrations")

    def test_split_table_name_qualified(self):
        """Test a qualified name is split at the first dot."""
        assert split_table_name("audit.versions") == ("audit", "versions")

    def test_split_version(self):
        """Test splitting a file name into version and rest."""
        assert split_version("12_add_users.up.sql") == (12, "add_users.up.sql")

    @pytest.mark.parametrize(
        "name", ["init.up.sql", "abc_init.up.sql", "0_x.up.sql", "\u00b2_x.up.sql"]
    )
    def test_split_version_rejects_bad_names(self, name):
        """Test names without a positive numeric prefix are rejected."""
        with pytest.raises(BadFileNameError):
            split_version(name)

    def test_version_from_path(self, temp_dir):
        """Test the version comes from the module file name."""
        assert version_from_path(temp_dir / "7_seed_data.py") == 7
        assert version_from_path("3_x.py") == 3

    def test_version_from_path_requires_python_file(self):
        """Test other extensions are rejected."""
        with pytest.raises(BadFileNameError, match="must have extension .py"):
            version_from_path("3_x.sql")

    def test_validate_migrations(self):
        """Test duplicates are reported with their version."""
        validate_migrations([Migration(1), Migration(2)])

        with pytest.raises(DuplicateVersionError) as exc_info:
            validate_migrations([Migration(1), Migration(2), Migration(1)])
        assert exc_info.value.version == 1


class TestRegistration:
    """Test registering migrations by hand."""

    def test_migrations_are_sorted(self):
        """Test the snapshot is in ascending version order."""
        collection = MigrationCollection()
        for version in (3, 1, 2):
            collection.register(version, noop)

        assert [m.version for m in collection.migrations()] == [1, 2, 3]

    def test_constructor_migrations(self):
        """Test migrations passed to the constructor are registered."""
        collection = MigrationCollection(Migration(2, up=noop), Migration(1, up=noop))

        assert [m.version for m in collection.migrations()] == [1, 2]
        assert len(collection) == 2

    def test_register_is_not_transactional(self):
        """Test register runs actions outside the ledger transaction."""
        migration = MigrationCollection().register(1, noop, noop)

        assert not migration.up_tx
        assert not migration.down_tx

    def test_register_tx_is_transactional(self):
        """Test register_tx runs both actions inside the ledger transaction."""
        migration = MigrationCollection().register_tx(1, noop)

        assert migration.up_tx
        assert migration.down_tx
        assert migration.down is None

    def test_duplicate_version(self):
        """Test a second registration of a version fails and changes nothing."""
        collection = MigrationCollection()
        first = collection.register(1, noop)

        with pytest.raises(DuplicateVersionError):
            collection.register_tx(1, noop)

        assert collection.migrations() == [first]

    def test_up_action_is_required(self):
        """Test register rejects a missing up action."""
        with pytest.raises(InvalidMigrationError):
            MigrationCollection().register(1, None)

    @pytest.mark.parametrize("version", [0, -1, True, "1"])
    def test_invalid_versions(self, version):
        """Test versions must be positive integers."""
        with pytest.raises(InvalidMigrationError):
            MigrationCollection().register(version, noop)

    def test_non_callable_down(self):
        """Test actions must be callable."""
        with pytest.raises(InvalidMigrationError):
            MigrationCollection().add_migration(Migration(1, up=noop, down="DROP"))

    def test_snapshot_is_independent(self):
        """Test later registrations do not change an earlier snapshot."""
        collection = MigrationCollection()
        collection.register(1, noop)

        snapshot = collection.migrations()
        collection.register(2, noop)

        assert [m.version for m in snapshot] == [1]
        assert len(collection.migrations()) == 2

    def test_concurrent_registration(self):
        """Test registrations from several threads keep order and uniqueness."""
        collection = MigrationCollection()

        def register_range(start):
            for version in range(start, 200, 4):
                collection.register(version, noop)

        threads = [
            threading.Thread(target=register_range, args=(i,)) for i in range(1, 5)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert [m.version for m in collection.migrations()] == list(range(1, 200))

    def test_last_version(self):
        """Test the highest registered version."""
        collection = MigrationCollection()
        assert collection.last_version() == 0

        collection.register(5, noop)
        collection.register(2, noop)

        assert collection.last_version() == 5

    def test_find_migration(self):
        """Test lookup of an exact version in a snapshot."""
        migrations = [Migration(version=2, up=noop), Migration(version=5, up=noop)]

        assert find_migration(migrations, 5) is migrations[1]
        assert find_migration(migrations, 3) is None

    def test_table_name(self):
        """Test the ledger table name is a collection setting."""
        collection = MigrationCollection(table_name="audit.versions")

        assert collection.schema_table_name() == ("audit", "versions")
        assert MigrationCollection().table_name == "gopg_migrations"

    def test_repr(self):
        """Test repr representation."""
        collection = MigrationCollection(table_name="ledger")
        collection.register(1, noop)

        assert repr(collection) == "<MigrationCollection(table='ledger', migrations=1)>"


class TestSQLDiscovery:
    """Test discovering SQL migration files."""

    def test_discovers_all_variants(self, migrations_dir):
        """Test the four file variants map to actions and flags."""
        (migrations_dir / "1_init.up.sql").write_text("CREATE TABLE a (id int);\n")
        (migrations_dir / "1_init.down.sql").write_text("DROP TABLE a;\n")
        (migrations_dir / "2_data.tx.up.sql").write_text("INSERT INTO a VALUES (1);\n")
        (migrations_dir / "2_data.tx.down.sql").write_text("DELETE FROM a;\n")

        collection = MigrationCollection()
        found = collection.discover_sql_migrations(migrations_dir)

        assert [m.version for m in found] == [1, 2]
        first, second = collection.migrations()
        assert isinstance(first.up, SQLAction)
        assert isinstance(first.down, SQLAction)
        assert not first.up_tx and not first.down_tx
        assert second.up_tx and second.down_tx
        assert first.label == "init"
        assert second.label == "data"

    def test_mixed_transactional_flags(self, migrations_dir):
        """Test each direction keeps the flag of its own file."""
        (migrations_dir / "3_mixed.tx.up.sql").write_text("SELECT 1;\n")
        (migrations_dir / "3_mixed.down.sql").write_text("SELECT 2;\n")

        collection = MigrationCollection()
        collection.discover_sql_migrations(migrations_dir)

        (migration,) = collection.migrations()
        assert migration.up_tx
        assert not migration.down_tx

    def test_down_only_migration(self, migrations_dir):
        """Test a version may have only a down file."""
        (migrations_dir / "4_cleanup.down.sql").write_text("SELECT 1;\n")

        collection = MigrationCollection()
        collection.discover_sql_migrations(migrations_dir)

        (migration,) = collection.migrations()
        assert migration.up is None
        assert migration.down is not None

    def test_split_directive_in_file(self, migrations_dir):
        """Test a split file yields a multi-statement action."""
        (migrations_dir / "5_init.up.sql").write_text(
            "CREATE TABLE a (id int);\n--gopg:split\nCREATE TABLE b (id int);\n"
        )
        (migrations_dir / "5_init.down.sql").write_text("DROP TABLE a;\n")

        collection = MigrationCollection()
        collection.discover_sql_migrations(migrations_dir)

        (migration,) = collection.migrations()
        assert len(migration.up.statements) == 2
        assert len(migration.down.statements) == 1

    def test_non_sql_files_are_ignored(self, migrations_dir):
        """Test unrelated files in the directory are skipped."""
        (migrations_dir / "README.md").write_text("notes")
        (migrations_dir / "1_init.up.sql").write_text("SELECT 1;\n")

        collection = MigrationCollection()

        assert len(collection.discover_sql_migrations(migrations_dir)) == 1

    def test_bad_extension(self, migrations_dir):
        """Test SQL files must end in a direction suffix."""
        (migrations_dir / "1_init.sql").write_text("SELECT 1;\n")

        with pytest.raises(BadFileNameError, match="must have extension"):
            MigrationCollection().discover_sql_migrations(migrations_dir)

    def test_missing_version(self, migrations_dir):
        """Test SQL files must start with a version."""
        (migrations_dir / "init.up.sql").write_text("SELECT 1;\n")

        with pytest.raises(BadFileNameError):
            MigrationCollection().discover_sql_migrations(migrations_dir)

    def test_duplicate_direction(self, migrations_dir):
        """Test two files for the same version and direction are rejected."""
        (migrations_dir / "1_a.up.sql").write_text("SELECT 1;\n")
        (migrations_dir / "1_b.tx.up.sql").write_text("SELECT 2;\n")

        with pytest.raises(DuplicateDirectionError) as exc_info:
            MigrationCollection().discover_sql_migrations(migrations_dir)
        assert exc_info.value.version == 1
        assert exc_info.value.direction == "up"

    def test_unknown_directive_fails_discovery(self, migrations_dir):
        """Test parse errors surface while discovering."""
        (migrations_dir / "1_a.up.sql").write_text("--gopg:whatever\n")

        with pytest.raises(UnknownDirectiveError):
            MigrationCollection().discover_sql_migrations(migrations_dir)

    def test_errors_leave_collection_unchanged(self, migrations_dir):
        """Test a failed scan registers nothing and can be retried."""
        (migrations_dir / "1_a.up.sql").write_text("SELECT 1;\n")
        bad = migrations_dir / "2_b.sql"
        bad.write_text("SELECT 2;\n")

        collection = MigrationCollection()
        with pytest.raises(BadFileNameError):
            collection.discover_sql_migrations(migrations_dir)
        assert len(collection) == 0

        bad.unlink()
        assert len(collection.discover_sql_migrations(migrations_dir)) == 1

    def test_collision_with_registered_version(self, migrations_dir):
        """Test discovered versions must not clash with registered ones."""
        (migrations_dir / "1_a.up.sql").write_text("SELECT 1;\n")
        (migrations_dir / "2_b.up.sql").write_text("SELECT 2;\n")

        collection = MigrationCollection()
        collection.register(2, noop)

        with pytest.raises(DuplicateVersionError):
            collection.discover_sql_migrations(migrations_dir)
        assert [m.version for m in collection.migrations()] == [2]

    def test_directory_is_scanned_once(self, migrations_dir):
        """Test a second scan of the same directory adds nothing."""
        (migrations_dir / "1_a.up.sql").write_text("SELECT 1;\n")

        collection = MigrationCollection()
        assert len(collection.discover_sql_migrations(migrations_dir)) == 1
        assert collection.discover_sql_migrations(migrations_dir) == []
        assert collection.discover_sql_migrations(str(migrations_dir)) == []
        assert len(collection) == 1

    def test_missing_directory(self, temp_dir):
        """Test a directory that does not exist contributes nothing."""
        collection = MigrationCollection()

        assert collection.discover_sql_migrations(temp_dir / "absent") == []


class TestPythonDiscovery:
    """Test discovering Python migration modules."""

    def test_discovers_module(self, migrations_dir):
        """Test a module defining up and down becomes a migration."""
        (migrations_dir / "3_add_index.py").write_text(
            "def up(db):\n    db.calls.append('up')\n\n"
            "def down(db):\n    db.calls.append('down')\n"
        )

        collection = MigrationCollection()
        found = collection.discover_python_migrations(migrations_dir)

        (migration,) = found
        assert migration.version == 3
        assert migration.label == "add_index"
        assert migration.up_tx and migration.down_tx

        class Recorder:
            calls: list = []

        migration.up(Recorder)
        migration.down(Recorder)
        assert Recorder.calls == ["up", "down"]

    def test_transactional_flag(self, migrations_dir):
        """Test TRANSACTIONAL = False runs the actions outside the transaction."""
        (migrations_dir / "1_big.py").write_text(
            "TRANSACTIONAL = False\n\ndef up(db):\n    pass\n"
        )

        collection = MigrationCollection()
        (migration,) = collection.discover_python_migrations(migrations_dir)

        assert not migration.up_tx
        assert migration.down is None

    def test_up_is_required(self, migrations_dir):
        """Test modules without up(db) are rejected."""
        (migrations_dir / "1_empty.py").write_text("def down(db):\n    pass\n")

        with pytest.raises(InvalidMigrationError, match="must define up"):
            MigrationCollection().discover_python_migrations(migrations_dir)

    def test_down_must_be_callable(self, migrations_dir):
        """Test a non-callable down is rejected at discovery."""
        (migrations_dir / "1_a.py").write_text(
            "down = 'DROP TABLE a'\n\ndef up(db):\n    pass\n"
        )

        with pytest.raises(InvalidMigrationError, match="not callable"):
            MigrationCollection().discover_python_migrations(migrations_dir)

    def test_import_error_names_file(self, migrations_dir):
        """Test errors raised while importing a module name the file."""
        (migrations_dir / "1_broken.py").write_text("raise RuntimeError('oops')\n")

        collection = MigrationCollection()
        with pytest.raises(InvalidMigrationError, match="1_broken.py: oops") as info:
            collection.discover_python_migrations(migrations_dir)

        assert isinstance(info.value.__cause__, RuntimeError)
        assert len(collection) == 0

    def test_helper_modules_are_skipped(self, migrations_dir):
        """Test modules not starting with a digit are not migrations."""
        (migrations_dir / "__init__.py").write_text("")
        (migrations_dir / "helpers.py").write_text("raise RuntimeError('no')\n")
        (migrations_dir / "1_a.py").write_text("def up(db):\n    pass\n")

        collection = MigrationCollection()

        assert len(collection.discover_python_migrations(migrations_dir)) == 1

    def test_duplicate_versions_in_directory(self, migrations_dir):
        """Test two modules with one version are rejected together."""
        (migrations_dir / "1_a.py").write_text("def up(db):\n    pass\n")
        (migrations_dir / "1_b.py").write_text("def up(db):\n    pass\n")

        collection = MigrationCollection()
        with pytest.raises(DuplicateVersionError):
            collection.discover_python_migrations(migrations_dir)
        assert len(collection) == 0

    def test_discover_combines_sql_and_python(self, migrations_dir):
        """Test discover scans both kinds of files."""
        (migrations_dir / "1_schema.up.sql").write_text("SELECT 1;\n")
        (migrations_dir / "2_data.py").write_text("def up(db):\n    pass\n")

        collection = MigrationCollection()
        found = collection.discover(migrations_dir)

        assert [m.version for m in found] == [1, 2]

    def test_sql_and_python_version_clash(self, migrations_dir):
        """Test one version cannot come from both a SQL file and a module."""
        (migrations_dir / "1_schema.up.sql").write_text("SELECT 1;\n")
        (migrations_dir / "1_data.py").write_text("def up(db):\n    pass\n")

        with pytest.raises(DuplicateVersionError):
            MigrationCollection().discover(migrations_dir)


class TestAutodiscovery:
    """Test configured directories are scanned on snapshot."""

    def test_snapshot_scans_directories(self, migrations_dir):
        """Test migrations() picks up files from configured directories."""
        (migrations_dir / "1_a.up.sql").write_text("SELECT 1;\n")

        collection = MigrationCollection(directories=[migrations_dir])

        assert [m.version for m in collection.migrations()] == [1]
        assert [m.version for m in collection.migrations()] == [1]

    def test_autodiscover_disabled(self, migrations_dir):
        """Test directories are ignored when autodiscovery is off."""
        (migrations_dir / "1_a.up.sql").write_text("SELECT 1;\n")

        collection = MigrationCollection(
            directories=[migrations_dir], autodiscover=False
        )

        assert collection.migrations() == []
