"""Error taxonomy shared by the gateway, its clients and the table strategies."""

from __future__ import annotations


class SqlGateError(Exception):
    """Base class for every failure raised by this package."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SqlGateError):
    """Request fields are missing or malformed; never reaches the engine."""


class NotFoundError(SqlGateError):
    """The target database file or local connection does not exist."""


class EngineError(SqlGateError):
    """SQLite failed while preparing, running or fetching a statement.

    The message is SQLite's own text so callers can show the real cause.
    """


class InternalError(SqlGateError):
    """Unexpected failure; reported to clients with a generic message."""


class GatewayRequestError(SqlGateError):
    """The gateway answered a client call with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteApiError(SqlGateError):
    """The remote table API reported a failure."""


class TableOperationError(SqlGateError):
    """A local table operation cannot be expressed for the target table."""
