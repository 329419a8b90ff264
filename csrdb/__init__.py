"""Lazy, TLS-aware database access for the customer-service voice bot."""

from __future__ import annotations

from .config import DatabaseSettings, load_settings
from .connections import ConnectionManager
from .errors import (
    CertificateUnavailable,
    ConnectFailed,
    DatabaseError,
    MissingCredentials,
    NotConnected,
    QueryFailed,
)
from .models import ConnectionHandle, ServerDescriptor, TrustMaterial
from .query import execute, ping, qualify_table, run_query

__version__ = "0.1.0"

__all__ = [
    "CertificateUnavailable",
    "ConnectFailed",
    "ConnectionHandle",
    "ConnectionManager",
    "DatabaseError",
    "DatabaseSettings",
    "MissingCredentials",
    "NotConnected",
    "QueryFailed",
    "ServerDescriptor",
    "TrustMaterial",
    "__version__",
    "execute",
    "load_settings",
    "ping",
    "qualify_table",
    "run_query",
]
