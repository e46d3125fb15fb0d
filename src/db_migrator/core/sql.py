"""SQL migration files: directive parsing and execution."""

from pathlib import Path

from .db import DB
from .exceptions import UnknownDirectiveError

DIRECTIVE_PREFIX = "--gopg:"
SPLIT_DIRECTIVE = "split"


def parse_statements(content: str, source: str | None = None) -> list[str]:
    """Split the text of a SQL migration file into statements.

    A line reading exactly ``--gopg:split`` ends the current statement. Any
    other line starting with ``--gopg:`` is an unknown directive. All other
    lines are kept verbatim, each terminated by a newline. Statements made
    only of whitespace are dropped.

    Args:
        content: File text.
        source: Where the text came from, used in error messages.

    Returns:
        Statements in file order.

    Raises:
        UnknownDirectiveError: For an unrecognised ``--gopg:`` line.
    """
    statements: list[str] = []
    buffer: list[str] = []

    def flush() -> None:
        statement = "".join(buffer)
        if statement.strip():
            statements.append(statement)
        buffer.clear()

    for line in content.splitlines():
        if line.startswith(DIRECTIVE_PREFIX):
            directive = line[len(DIRECTIVE_PREFIX) :]
            if directive != SPLIT_DIRECTIVE:
                raise UnknownDirectiveError(directive, source)
            flush()
            continue
        buffer.append(line + "\n")

    flush()
    return statements


class SQLAction:
    """Migration action running the statements of one SQL file."""

    def __init__(self, statements: list[str], path: Path | None = None) -> None:
        self.statements = list(statements)
        self.path = path

    @classmethod
    def from_file(cls, path: Path) -> "SQLAction":
        """Read and parse a SQL file."""
        return cls(parse_statements(path.read_text(), source=path.name), path)

    def __call__(self, db: DB) -> None:
        if len(self.statements) > 1:
            # Split statements share one connection so session settings carry over.
            with db.dedicated() as conn_db:
                for statement in self.statements:
                    conn_db.exec_sql(statement)
            return

        for statement in self.statements:
            db.exec_sql(statement)

    def __repr__(self) -> str:
        name = self.path.name if self.path else "<inline>"
        return f"<SQLAction({name}, statements={len(self.statements)})>"
