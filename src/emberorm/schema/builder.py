"""
Schema builder converting model metadata into DDL statements.
"""

from __future__ import annotations

from typing import Iterable, List

from ..core.fields import AutoField, Field, GenerationType
from ..core.model import Model, sort_by_dependency
from ..core.relations import ManyToOne
from ..dialects.base import Dialect
from ..persistence.generators import GENERATOR_TABLE
from ..utils import get_logger


class SchemaBuilder:
    """
    Produces dialect-specific SQL for schema manipulation.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self.logger = get_logger("schema.builder")

    def create_table_sql(self, model: type[Model]) -> str:
        pieces = self._render_columns(model) + self._render_foreign_keys(model)
        table_name = self.dialect.format_table(model._meta.table_name)
        return f"CREATE TABLE IF NOT EXISTS {table_name} ({', '.join(pieces)})"

    def create_index_sql(self, model: type[Model]) -> List[str]:
        table = model._meta.table_name
        statements = []
        for field in model._meta.get_fields():
            if not field.index or field.primary_key or field.unique:
                continue
            index_name = self.dialect.quote_identifier(f"ix_{table}_{field.column_name()}")
            statements.append(
                f"CREATE INDEX IF NOT EXISTS {index_name} ON {self.dialect.format_table(table)} "
                f"({self.dialect.quote_identifier(field.column_name())})"
            )
        return statements

    def create_generator_table_sql(self) -> str:
        name = self.dialect.render_column_definition("name", "VARCHAR(255)", nullable=False)
        next_val = self.dialect.render_column_definition("next_val", "BIGINT", nullable=False)
        return (
            f"CREATE TABLE IF NOT EXISTS {self.dialect.format_table(GENERATOR_TABLE)} "
            f"({name} PRIMARY KEY, {next_val})"
        )

    def create_all_sql(self, models: Iterable[type[Model]]) -> List[str]:
        """
        DDL for ``models`` with referenced tables first, plus the key
        generator table when any model draws keys from it.
        """
        ordered = [m for m in sort_by_dependency(models) if not m._meta.abstract]
        statements: List[str] = []
        if any(m._meta.generation is GenerationType.TABLE for m in ordered):
            statements.append(self.create_generator_table_sql())
        for model in ordered:
            statements.append(self.create_table_sql(model))
            statements.extend(self.create_index_sql(model))
        return statements

    def drop_table_sql(self, model: type[Model]) -> str:
        table_name = self.dialect.format_table(model._meta.table_name)
        self.logger.warning(
            "DROP TABLE generated for %s; confirm the data may be discarded before applying.",
            table_name,
        )
        return f"DROP TABLE IF EXISTS {table_name}"

    def drop_all_sql(self, models: Iterable[type[Model]]) -> List[str]:
        ordered = [m for m in sort_by_dependency(models) if not m._meta.abstract]
        statements = [self.drop_table_sql(model) for model in reversed(ordered)]
        if any(m._meta.generation is GenerationType.TABLE for m in ordered):
            statements.append(f"DROP TABLE IF EXISTS {self.dialect.format_table(GENERATOR_TABLE)}")
        return statements

    # Rendering helpers -------------------------------------------------
    def _column_type(self, field: Field) -> str:
        if (
            isinstance(field, AutoField)
            and field.strategy is GenerationType.IDENTITY
            and self.dialect.name == "postgresql"
        ):
            return "SERIAL"
        if not field.db_type:
            raise ValueError(f"Field '{field.name}' missing db_type for schema generation.")
        return field.db_type

    def _render_columns(self, model: type[Model]) -> List[str]:
        pieces: List[str] = []
        for field in model._meta.get_fields():
            column_def = self.dialect.render_column_definition(
                field.column_name(),
                self._column_type(field),
                nullable=field.nullable and not field.primary_key,
            )
            if field.primary_key:
                column_def += " PRIMARY KEY"
            elif field.unique:
                column_def += " UNIQUE"
            default_sql = self._default_clause(field)
            if default_sql:
                column_def += f" {default_sql}"
            pieces.append(column_def)
        return pieces

    def _render_foreign_keys(self, model: type[Model]) -> List[str]:
        clauses = []
        for field in model._meta.many_to_one():
            target = field.remote_model
            if target is None:
                raise ValueError(f"Relation '{model.__name__}.{field.name}' target '{field.to}' is unresolved.")
            clauses.append(
                self.dialect.render_foreign_key(
                    field.column_name(),
                    target._meta.table_name,
                    target._meta.primary_key.column_name(),
                    field.on_delete,
                )
            )
        return clauses

    @staticmethod
    def _default_clause(field: Field) -> str | None:
        if isinstance(field, ManyToOne) or field.default is None or callable(field.default):
            return None
        value = field.default
        if isinstance(value, bool):
            return f"DEFAULT {'TRUE' if value else 'FALSE'}"
        if isinstance(value, str):
            escaped = value.replace("'", "''")
            return f"DEFAULT '{escaped}'"
        return f"DEFAULT {value}"
