"""
SQL dialects for the supported backends.
"""

from .base import Dialect
from .postgres import PostgresDialect
from .sqlite import SQLiteDialect

__all__ = ["Dialect", "SQLiteDialect", "PostgresDialect"]
