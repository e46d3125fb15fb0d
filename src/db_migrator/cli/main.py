"""Main CLI entry point for db-migrator."""

import click

from .. import __version__
from .commands import run_command
from .utils import error_handler


@click.group()
@click.version_option(version=__version__, prog_name="db-migrator")
@click.option("--config", "-c", help="Configuration file path")
@click.option("--profile", "-p", help="Configuration profile to use")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
# Configuration override flags
@click.option("--database-url", help="Override database_url setting")
@click.option("--table-name", help="Override table_name setting")
@click.option("--migrations-dir", help="Override migrations_dir setting")
@click.option("--log-level", help="Override log_level setting")
@click.pass_context
def main(
    ctx: click.Context,
    config: str | None,
    profile: str | None,
    verbose: bool,
    quiet: bool,
    json: bool,
    database_url: str | None,
    table_name: str | None,
    migrations_dir: str | None,
    log_level: str | None,
) -> None:
    """db-migrator - Versioned schema migrations for SQL databases.

    Migrations are SQL files named <version>_<label>.up.sql / .down.sql
    (or .tx.up.sql / .tx.down.sql to run inside the version transaction)
    and Python modules named <version>_<label>.py defining up(db) and down(db).

    Run "init" once to create the version table, then "up" to migrate.
    """
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["profile"] = profile
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json"] = json

    ctx.obj["cli_overrides"] = {
        k: v
        for k, v in {
            "database_url": database_url,
            "table_name": table_name,
            "migrations_dir": migrations_dir,
            "log_level": log_level,
        }.items()
        if v is not None
    }

    if verbose and quiet:
        raise click.UsageError("Cannot use both --verbose and --quiet options")


@main.command()
@click.pass_context
@error_handler
def init(ctx: click.Context) -> None:
    """Create the version table."""
    run_command(ctx, "init")


@main.command()
@click.argument("target", required=False)
@click.pass_context
@error_handler
def up(ctx: click.Context, target: str | None) -> None:
    """Apply pending migrations, optionally stopping at TARGET."""
    if target is None:
        run_command(ctx, "up")
    else:
        run_command(ctx, "up", target)


@main.command()
@click.pass_context
@error_handler
def down(ctx: click.Context) -> None:
    """Revert the last applied migration."""
    run_command(ctx, "down")


@main.command()
@click.pass_context
@error_handler
def reset(ctx: click.Context) -> None:
    """Revert all applied migrations."""
    run_command(ctx, "reset")


@main.command()
@click.pass_context
@error_handler
def version(ctx: click.Context) -> None:
    """Print the current version."""
    run_command(ctx, "version")


@main.command("set_version")
@click.argument("new_version")
@click.pass_context
@error_handler
def set_version(ctx: click.Context, new_version: str) -> None:
    """Record NEW_VERSION as current without running migrations."""
    run_command(ctx, "set_version", new_version)


@main.command()
@click.argument("words", nargs=-1, required=True)
@click.pass_context
@error_handler
def create(ctx: click.Context, words: tuple[str, ...]) -> None:
    """Create a Python migration file described by WORDS."""
    run_command(ctx, "create", *words)


if __name__ == "__main__":
    main()
