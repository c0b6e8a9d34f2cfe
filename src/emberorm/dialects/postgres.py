"""
PostgreSQL dialect.
"""

from __future__ import annotations

from .base import Dialect


class PostgresDialect(Dialect):
    """
    ``%s`` placeholders, schema-qualified table names and ``RETURNING`` for
    generated keys.
    """

    name = "postgresql"
    placeholder = "%s"
    supports_returning = True

    def format_table(self, table_name: str) -> str:
        schema, dot, table = table_name.partition(".")
        if not dot:
            return self.quote_identifier(table_name)
        return f"{self.quote_identifier(schema)}.{self.quote_identifier(table)}"
