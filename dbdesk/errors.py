"""Error taxonomy shared by the registry, clients, and boundary handlers."""

from __future__ import annotations


class DbDeskError(RuntimeError):
    """Base class for every error raised by the database core."""


class ValidationError(DbDeskError):
    """Raised when a connection request is missing required fields."""


class DatabaseConnectionError(DbDeskError):
    """Raised when a client cannot open its driver connection."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class NotFoundError(DbDeskError):
    """Raised for unknown connection identifiers."""


class NotConnectedError(DbDeskError):
    """Raised when an operation needs a bound client that is absent."""


class ReadOnlyViolationError(DbDeskError):
    """Raised when a statement is rejected by the read-only policy."""


class UnsupportedEngineError(DbDeskError):
    """Raised for engine kinds outside the supported set."""


class QueryExecutionError(DbDeskError):
    """Raised when a statement fails inside the driver."""


__all__ = [
    "DatabaseConnectionError",
    "DbDeskError",
    "NotConnectedError",
    "NotFoundError",
    "QueryExecutionError",
    "ReadOnlyViolationError",
    "UnsupportedEngineError",
    "ValidationError",
]
