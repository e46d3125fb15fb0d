"""
Logging utilities for the migration engine.

This module provides component loggers and helpers for:
- Migration discovery
- Applied and reverted migrations
- Version transitions
- Lock degradation
"""

from pathlib import Path

from ..utils.logging import LogContext, get_logger

runner_logger = get_logger(__name__ + ".runner", LogContext.RUNNER)
registry_logger = get_logger(__name__ + ".registry", LogContext.REGISTRY)
ledger_logger = get_logger(__name__ + ".ledger", LogContext.LEDGER)
lock_logger = get_logger(__name__ + ".lock", LogContext.LOCK)


def log_discovery(directory: Path, kind: str, versions: list[int]) -> None:
    """Log the result of scanning a migrations directory."""
    registry_logger.info(
        f"Discovered {len(versions)} {kind} migration(s) in {directory}",
        directory=str(directory),
        kind=kind,
        versions=versions,
    )


def log_migration_applied(
    version: int, direction: str, transactional: bool, new_version: int, elapsed: float
) -> None:
    """Log a migration step that ran and was recorded."""
    logger = get_logger(__name__ + ".runner", LogContext.RUNNER)
    logger.set_version(version)
    logger.info(
        f"Migration {version} {direction} applied",
        direction=direction,
        transactional=transactional,
        new_version=new_version,
        execution_time=elapsed,
    )


def log_version_transition(command: str, old_version: int, new_version: int) -> None:
    """Log the version change produced by a command."""
    logger = get_logger(__name__ + ".runner", LogContext.RUNNER)
    logger.set_command(command)
    logger.info(
        f"{command}: version {old_version} -> {new_version}",
        old_version=old_version,
        new_version=new_version,
    )


def log_lock_fallback(table_name: str, reason: str) -> None:
    """Log that the ledger lock is unsupported and the run continues without it."""
    lock_logger.warning(
        f"Table lock on {table_name} is not supported by this database; "
        "concurrent runs are not serialized",
        table_name=table_name,
        reason=reason,
    )
