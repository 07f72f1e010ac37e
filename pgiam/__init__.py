"""Token-authenticated PostgreSQL connection lifecycle management."""

from __future__ import annotations

from .config import ConfigurationError, ConnectionConfig, load_config
from .connections import Backoff, ConnectionManager, ConnectionRefreshError
from .credentials import CredentialProvider, CredentialServiceError, RdsTokenProvider
from .models import ConnectionParameters, ConnectionState
from .query import QueryExecutionError, run_query
from .service import DataService

__version__ = "0.1.0"

__all__ = [
    "Backoff",
    "ConfigurationError",
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionParameters",
    "ConnectionRefreshError",
    "ConnectionState",
    "CredentialProvider",
    "CredentialServiceError",
    "DataService",
    "QueryExecutionError",
    "RdsTokenProvider",
    "__version__",
    "load_config",
    "run_query",
]
