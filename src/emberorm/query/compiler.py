"""
SQL compilation utilities translating expressions into SQL strings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Sequence, Tuple

from ..dialects.base import Dialect
from .expressions import Q

if TYPE_CHECKING:
    from ..core.model import Model


LOOKUP_OPERATORS = {
    "exact": "=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "contains": "LIKE",
}


class SQLCompiler:
    """
    Compile QuerySet state into SQL statements and parameters.

    Model instances used as lookup values are replaced by their primary key,
    so ``filter(parent=parent)`` compares the foreign-key column.
    """

    def __init__(
        self,
        model: type["Model"],
        dialect: Dialect,
        where: Q | None = None,
        ordering: Sequence[str] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> None:
        self.model = model
        self.dialect = dialect
        self.where = where
        self.ordering = tuple(ordering)
        self.limit = limit
        self.offset = offset

    def compile(self) -> Tuple[str, List[Any]]:
        columns = ", ".join(
            self.dialect.quote_identifier(field.column_name()) for field in self.model._meta.get_fields()
        )
        sql_parts = [f"SELECT {columns} FROM {self._table()}"]
        where_sql, params = self._compile_where()
        if where_sql:
            sql_parts.append(f"WHERE {where_sql}")
        if self.ordering:
            sql_parts.append("ORDER BY " + ", ".join(self._compile_ordering(name) for name in self.ordering))
        limit_clause = self.dialect.limit_clause(self.limit, self.offset)
        if limit_clause:
            sql_parts.append(limit_clause)
        return " ".join(sql_parts), params

    def compile_count(self) -> Tuple[str, List[Any]]:
        sql = f"SELECT COUNT(*) FROM {self._table()}"
        where_sql, params = self._compile_where()
        if where_sql:
            sql += f" WHERE {where_sql}"
        return sql, params

    # Helpers -----------------------------------------------------------
    def _table(self) -> str:
        return self.dialect.format_table(self.model._meta.table_name)

    def _compile_where(self) -> Tuple[str, List[Any]]:
        if self.where is None or self.where.is_empty():
            return "", []
        return self._compile_q(self.where)

    def _compile_ordering(self, field_name: str) -> str:
        descending = field_name.startswith("-")
        name = field_name[1:] if descending else field_name
        field = self.model._meta.get_field(name)
        clause = self.dialect.quote_identifier(field.column_name())
        if descending:
            clause += " DESC"
        return clause

    def _compile_q(self, q: Q) -> Tuple[str, List[Any]]:
        parts: List[str] = []
        params: List[Any] = []
        for child in q.children:
            if isinstance(child, Q):
                child_sql, child_params = self._compile_q(child)
                if child_sql:
                    parts.append(f"({child_sql})")
                    params.extend(child_params)
            else:
                field_lookup, value = child
                lookup_sql, lookup_params = self._compile_lookup(field_lookup, value)
                parts.append(lookup_sql)
                params.extend(lookup_params)

        if not parts:
            return "", []
        sql = f" {q.connector} ".join(parts)
        if q.negated:
            sql = f"NOT ({sql})"
        return sql, params

    def _compile_lookup(self, field_lookup: str, value: Any) -> Tuple[str, List[Any]]:
        if "__" in field_lookup:
            field_name, lookup = field_lookup.split("__", 1)
        else:
            field_name, lookup = field_lookup, "exact"

        field = self.model._meta.get_field(field_name)
        column = self.dialect.quote_identifier(field.column_name())
        placeholder = self.dialect.parameter_placeholder()
        value = self._to_db(value)

        if lookup == "isnull":
            return f"{column} IS {'NULL' if value else 'NOT NULL'}", []
        if lookup == "in":
            values = [self._to_db(item) for item in value]
            if not values:
                return "1 = 0", []
            return f"{column} IN ({', '.join(placeholder for _ in values)})", values
        if lookup == "iexact":
            return f"LOWER({column}) = LOWER({placeholder})", [value]
        if value is None:
            if lookup != "exact":
                raise ValueError("NULL comparison only supported for equality.")
            return f"{column} IS NULL", []

        operator = LOOKUP_OPERATORS.get(lookup)
        if operator is None:
            raise ValueError(f"Unsupported lookup '{lookup}'")
        if lookup == "contains":
            value = f"%{value}%"
        return f"{column} {operator} {placeholder}", [value]

    @staticmethod
    def _to_db(value: Any) -> Any:
        from ..core.model import Model

        if isinstance(value, Model):
            return value.pk
        return value
