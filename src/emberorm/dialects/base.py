"""
SQL rendering shared by the supported backends.
"""

from __future__ import annotations


class Dialect:
    """
    Renders the identifiers, placeholders and DDL fragments that the persister,
    query compiler and schema builder emit. Backends override what differs.
    """

    name = "generic"
    placeholder = "?"
    supports_returning = False

    def quote_identifier(self, identifier: str) -> str:
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'

    def format_table(self, table_name: str) -> str:
        return self.quote_identifier(table_name)

    def parameter_placeholder(self) -> str:
        return self.placeholder

    def limit_clause(self, limit: int | None, offset: int | None) -> str:
        parts = [f"LIMIT {limit}"] if limit is not None else []
        if offset is not None:
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def render_column_definition(self, column: str, column_type: str, *, nullable: bool) -> str:
        rendered = f"{self.quote_identifier(column)} {column_type}"
        return rendered if nullable else rendered + " NOT NULL"

    def render_foreign_key(self, column: str, table: str, target_column: str, on_delete: str | None) -> str:
        clause = (
            f"FOREIGN KEY ({self.quote_identifier(column)}) "
            f"REFERENCES {self.format_table(table)} ({self.quote_identifier(target_column)})"
        )
        return f"{clause} ON DELETE {on_delete}" if on_delete else clause

    def returning_clause(self, column: str) -> str:
        if not self.supports_returning:
            return ""
        return f" RETURNING {self.quote_identifier(column)}"
