"""Migration commands."""

from pathlib import Path
from typing import Any

import click

from ..config import MigratorConfig, load_config
from ..core.collection import MigrationCollection
from ..core.runner import MigrationRunner, RunResult, create_migration
from ..database import DatabaseManager
from ..utils.logging import LogLevel, setup_logging
from .utils import format_output, quiet_echo, success_message, verbose_echo


def _load_config(ctx: click.Context) -> MigratorConfig:
    config = load_config(
        config_path=ctx.obj.get("config"),
        profile=ctx.obj.get("profile"),
        cli_overrides=ctx.obj.get("cli_overrides"),
    )

    log_level = config.log_level
    if ctx.obj.get("verbose"):
        log_level = LogLevel.DEBUG.value
    elif ctx.obj.get("quiet"):
        log_level = LogLevel.WARNING.value
    setup_logging(
        log_level=log_level,
        log_file=Path(config.log_file) if config.log_file else None,
        enable_structured=config.structured_logging,
    )
    return config


def _build_collection(config: MigratorConfig) -> MigrationCollection:
    return MigrationCollection(
        table_name=config.table_name,
        directories=[config.migrations_dir],
        autodiscover=config.sql_autodiscover,
    )


def run_command(ctx: click.Context, *args: str) -> RunResult:
    """Run one migration command and report the version transition."""
    config = _load_config(ctx)
    verbose_echo(ctx, f"Migrations directory: {config.migrations_dir}")
    verbose_echo(ctx, f"Ledger table: {config.table_name}")

    collection = _build_collection(config)
    if args and args[0] == "create":
        # Writing a template needs no database connection
        result = create_migration(collection, config.migrations_dir, *args[1:])
        _report(ctx, args[0], result)
        return result

    with DatabaseManager(config.database_url, echo=config.echo) as db_manager:
        runner = MigrationRunner(db_manager.engine, collection, config.migrations_dir)
        result = runner.run(*args)

    _report(ctx, args[0] if args else "up", result)
    return result


def _report(ctx: click.Context, command: str, result: RunResult) -> None:
    data: dict[str, Any] = {
        "old_version": result.old_version,
        "new_version": result.new_version,
    }
    if result.created_file is not None:
        data["created_file"] = str(result.created_file)

    def human_format(data: dict[str, Any]) -> None:
        if result.created_file is not None:
            success_message(f"Created migration {result.created_file}")
        elif command != "version" and result.changed:
            quiet_echo(
                ctx,
                f"migrated from version {result.old_version} "
                f"to {result.new_version}",
            )
        else:
            quiet_echo(ctx, f"version is {result.new_version}")

    format_output(ctx, data, human_format)
