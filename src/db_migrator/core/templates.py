"""Migration file templates for the ``create`` command."""

import re
from pathlib import Path

from .exceptions import TemplateExistsError

_NAME_RE = re.compile(r"[^a-z0-9]+")

MIGRATION_TEMPLATE = '''"""{description}"""

# Run up and down inside the transaction that records the version.
TRANSACTIONAL = True


def up(db):
    db.execute("")


def down(db):
    db.execute("")
'''


def format_migration_filename(version: int, description: str) -> str:
    """Return ``<version>_<slug>.py`` for a migration description."""
    slug = _NAME_RE.sub("_", description.lower())
    return f"{version}_{slug}.py"


def create_migration_file(directory: Path, filename: str, description: str) -> Path:
    """Write a new migration module from the template.

    Args:
        directory: Where the migration modules live.
        filename: File name, as returned by ``format_migration_filename``.
        description: Text used for the module docstring.

    Returns:
        Path of the created file.

    Raises:
        TemplateExistsError: If the file already exists.
    """
    path = directory / filename
    if path.exists():
        raise TemplateExistsError(
            f"file={str(path)!r} already exists", context={"path": str(path)}
        )

    directory.mkdir(parents=True, exist_ok=True)
    path.write_text(MIGRATION_TEMPLATE.format(description=description))
    return path
