"""Error taxonomy shared by the connection and query layers."""

from __future__ import annotations

from typing import Any, Sequence


class DatabaseError(RuntimeError):
    """Base class for every error raised by csrdb."""


class MissingCredentials(DatabaseError):
    """Raised when host, user or password is not configured."""


class CertificateUnavailable(DatabaseError):
    """Raised when secure mode needs a trust certificate and none can be obtained."""


class ConnectFailed(DatabaseError):
    """Raised when the connection pool cannot be opened."""


class NotConnected(DatabaseError):
    """Raised when a statement is executed without a live connection handle."""


class QueryFailed(DatabaseError):
    """Raised when a statement fails; keeps the statement and parameters for diagnostics."""

    def __init__(self, statement: str, parameters: Sequence[Any], message: str) -> None:
        super().__init__(message)
        self.statement = statement
        self.parameters = tuple(parameters)


__all__ = [
    "CertificateUnavailable",
    "ConnectFailed",
    "DatabaseError",
    "MissingCredentials",
    "NotConnected",
    "QueryFailed",
]
