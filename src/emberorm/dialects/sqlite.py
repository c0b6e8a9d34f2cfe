"""
SQLite dialect.
"""

from __future__ import annotations

from .base import Dialect


class SQLiteDialect(Dialect):
    """
    qmark placeholders; generated keys are read from ``lastrowid``.
    """

    name = "sqlite"

    def limit_clause(self, limit: int | None, offset: int | None) -> str:
        # SQLite only accepts OFFSET after a LIMIT
        if offset is not None and limit is None:
            limit = -1
        return super().limit_clause(limit, offset)
