"""Migration record."""

from collections.abc import Callable
from dataclasses import dataclass

from .db import DB
from .enums import Direction

Action = Callable[[DB], None]


@dataclass(frozen=True)
class Migration:
    """One versioned schema change.

    Attributes:
        version: Positive version number, unique within a collection.
        up: Action applying the change.
        down: Action reverting the change; ``None`` reverts as a no-op.
        up_tx: Run ``up`` inside the transaction that records the version.
        down_tx: Run ``down`` inside the transaction that records the version.
        label: Free-form description, usually taken from the file name.
    """

    version: int
    up: Action | None = None
    down: Action | None = None
    up_tx: bool = False
    down_tx: bool = False
    label: str = ""

    def action(self, direction: Direction) -> Action | None:
        return self.up if direction is Direction.UP else self.down

    def transactional(self, direction: Direction) -> bool:
        return self.up_tx if direction is Direction.UP else self.down_tx

    def __str__(self) -> str:
        return str(self.version)

    def __repr__(self) -> str:
        return (
            f"<Migration(version={self.version}, label={self.label!r}, "
            f"up_tx={self.up_tx}, down_tx={self.down_tx})>"
        )
