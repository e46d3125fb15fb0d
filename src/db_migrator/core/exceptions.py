"""Exceptions raised by the migration engine."""

from ..utils.logging import (
    CommandError,
    DatabaseError,
    ExecutionError,
    RegistryError,
)


class DuplicateVersionError(RegistryError):
    """Two migrations share a version."""

    def __init__(self, version: int):
        super().__init__(
            f"there are multiple migrations with version={version}",
            context={"version": version},
        )
        self.version = version


class BadFileNameError(RegistryError):
    """A migration file name does not follow the naming grammar."""

    def __init__(self, file_name: str, reason: str):
        super().__init__(
            f"file={file_name!r} {reason}", context={"file_name": file_name}
        )
        self.file_name = file_name


class DuplicateDirectionError(RegistryError):
    """Two files supply the same direction for one version."""

    def __init__(self, version: int, direction: str):
        super().__init__(
            f"migration={version} already has {direction} action",
            context={"version": version, "direction": direction},
        )
        self.version = version
        self.direction = direction


class UnknownDirectiveError(RegistryError):
    """A SQL file contains a directive line that is not recognised."""

    def __init__(self, directive: str, source: str | None = None):
        message = f"unknown gopg directive: {directive!r}"
        if source:
            message = f"{message} in {source}"
        super().__init__(message, context={"directive": directive, "source": source})
        self.directive = directive


class InvalidMigrationError(RegistryError):
    """A migration definition is incomplete or malformed."""

    pass


class TemplateExistsError(RegistryError):
    """The migration file `create` would write already exists."""

    pass


class LedgerMissingError(DatabaseError):
    """The ledger table has not been created yet."""

    def __init__(self, table_name: str):
        super().__init__(
            f"table {table_name!r} does not exist; did you run init?",
            context={"table_name": table_name},
        )


class LedgerError(DatabaseError):
    """Reading or writing the ledger failed."""

    pass


class LockError(DatabaseError):
    """Opening the locked ledger transaction failed."""

    pass


class MissingArgumentError(CommandError):
    """A command argument is absent or not a number."""

    pass


class UnsupportedCommandError(CommandError):
    """The command name is not recognised."""

    def __init__(self, command: str):
        super().__init__(
            f"unsupported command: {command!r}", context={"command": command}
        )
        self.command = command


class MigrationFailedError(ExecutionError):
    """A migration action failed; earlier steps of the run stay applied."""

    def __init__(
        self,
        version: int,
        direction: str,
        old_version: int,
        new_version: int,
        cause: BaseException,
    ):
        super().__init__(
            f"migration {version} ({direction}) failed: {cause}",
            context={
                "version": version,
                "direction": direction,
                "old_version": old_version,
                "new_version": new_version,
            },
        )
        self.version = version
        self.direction = direction
        self.old_version = old_version
        self.new_version = new_version
