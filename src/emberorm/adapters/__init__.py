"""
Storage engine adapters.
"""

from .base import (
    AdapterConfigurationError,
    AdapterConnectionError,
    AdapterError,
    AdapterExecutionError,
    ConnectionConfig,
    ConstraintViolationError,
    DatabaseAdapter,
)
from .postgres import PostgresAdapter
from .sqlite import SQLiteAdapter

__all__ = [
    "AdapterConfigurationError",
    "AdapterConnectionError",
    "AdapterError",
    "AdapterExecutionError",
    "ConnectionConfig",
    "ConstraintViolationError",
    "DatabaseAdapter",
    "PostgresAdapter",
    "SQLiteAdapter",
    "adapter_for",
]


def adapter_for(config: ConnectionConfig) -> DatabaseAdapter:
    """
    Pick an adapter from the URL scheme.
    """
    scheme = config.scheme.split("+", 1)[0]
    if scheme in ("sqlite", ""):
        return SQLiteAdapter()
    if scheme in ("postgres", "postgresql"):
        return PostgresAdapter()
    raise AdapterConfigurationError(f"No adapter registered for scheme '{scheme}'")
