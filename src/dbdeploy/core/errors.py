"""Portable error taxonomy for schema deployment.

Vendor exceptions raised by a DB-API driver never escape the target layer
untouched: the dialect translator classifies them into one of the kinds
below and wraps them in the matching ``DataAccessError`` subclass. The
retry loop only looks at ``kind``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a database failure."""

    DEADLOCK = "DEADLOCK"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    CONNECTION = "CONNECTION"
    DUPLICATE = "DUPLICATE"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    UNDEFINED_NAME = "UNDEFINED_NAME"
    GENERIC = "GENERIC"

    @property
    def retryable(self) -> bool:
        """Only lock contention is recovered locally."""
        return self in (ErrorKind.DEADLOCK, ErrorKind.LOCK_TIMEOUT)


class DataAccessError(RuntimeError):
    """Base class for translated database errors (Generic kind)."""

    kind = ErrorKind.GENERIC

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
        # filled in by the retry loop when the error aborts an object
        self.object_name: str | None = None
        self.remaining_attempts: int | None = None

    def with_context(self, object_name: str, remaining_attempts: int) -> "DataAccessError":
        """Attach the failing object and the retry budget left at failure time."""
        self.object_name = object_name
        self.remaining_attempts = remaining_attempts
        return self

    def __str__(self) -> str:
        msg = super().__str__()
        if self.object_name is None:
            return msg
        return f"{msg} [object={self.object_name}, remaining={self.remaining_attempts}]"


class LockError(DataAccessError):
    """Deadlock or lock-wait timeout reported by the database."""

    def __init__(
        self, message: str, *, deadlock: bool, cause: BaseException | None = None
    ):
        super().__init__(message, cause=cause)
        self.deadlock = deadlock

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return ErrorKind.DEADLOCK if self.deadlock else ErrorKind.LOCK_TIMEOUT


class DatabaseConnectionError(DataAccessError):
    """Transport or connectivity failure."""

    kind = ErrorKind.CONNECTION


class UniqueConstraintViolationError(DataAccessError):
    """A row or object already exists where uniqueness was assumed."""

    kind = ErrorKind.DUPLICATE


class AlreadyExistsError(DataAccessError):
    """The DDL target is already present."""

    kind = ErrorKind.ALREADY_EXISTS


class UndefinedNameError(DataAccessError):
    """A referenced object does not exist."""

    kind = ErrorKind.UNDEFINED_NAME


_ERROR_CLASSES: dict[ErrorKind, type[DataAccessError]] = {
    ErrorKind.CONNECTION: DatabaseConnectionError,
    ErrorKind.DUPLICATE: UniqueConstraintViolationError,
    ErrorKind.ALREADY_EXISTS: AlreadyExistsError,
    ErrorKind.UNDEFINED_NAME: UndefinedNameError,
    ErrorKind.GENERIC: DataAccessError,
}


def error_for_kind(kind: ErrorKind, message: str, cause: BaseException | None = None) -> DataAccessError:
    """Build the typed error for a classification result."""
    if kind.retryable:
        return LockError(message, deadlock=kind == ErrorKind.DEADLOCK, cause=cause)
    return _ERROR_CLASSES[kind](message, cause=cause)


class SchemaDefinitionError(ValueError):
    """The static schema definition is invalid (never retried)."""


class DependencyCycleError(SchemaDefinitionError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__("Dependency cycle detected: " + " -> ".join(cycle))
        self.cycle = cycle
