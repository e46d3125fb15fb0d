"""CLI utilities for output formatting and common functionality."""

import json
import sys
from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from ..utils.logging import MigratorException


def error_handler(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator for handling CLI errors."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except MigratorException as e:
            click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
            sys.exit(1)
        except Exception as e:
            click.echo(click.style(f"Unexpected error: {e}", fg="red"), err=True)
            sys.exit(1)

    return wrapper


def success_message(message: str) -> None:
    """Display a success message."""
    click.echo(click.style(f"✓ {message}", fg="green"))


def output_json(data: dict[str, Any]) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=2))


def verbose_echo(ctx: click.Context, message: str) -> None:
    """Echo message only if verbose mode is enabled."""
    if ctx.obj and ctx.obj.get("verbose"):
        click.echo(click.style(f"[VERBOSE] {message}", fg="blue"), err=True)


def quiet_echo(ctx: click.Context, message: str) -> None:
    """Echo message only if not in quiet mode."""
    if not (ctx.obj and ctx.obj.get("quiet")):
        click.echo(message)


def format_output(
    ctx: click.Context, data: dict[str, Any], human_format_func: Any = None
) -> None:
    """Format output based on context (JSON or human-readable)."""
    if ctx.obj and ctx.obj.get("json"):
        output_json(data)
    elif human_format_func:
        human_format_func(data)
    else:
        for key, value in data.items():
            click.echo(f"{key}: {value}")
