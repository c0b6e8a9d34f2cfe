"""
Statement construction and execution for single entities.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Type

from ..core.fields import Field
from ..core.model import Model
from .change_tracker import column_state
from .errors import ConcurrentModificationError

if TYPE_CHECKING:
    from .session import Session


class EntityPersister:
    """
    Builds the INSERT/UPDATE/DELETE/SELECT statements a session needs and
    runs them through :meth:`Session.execute`.

    Rows are returned as dictionaries keyed by field name, ready for
    :meth:`Model._from_db`.
    """

    def __init__(self, session: "Session") -> None:
        self.session = session

    @property
    def dialect(self):
        return self.session.dialect

    def _column(self, field: Field) -> str:
        return self.dialect.quote_identifier(field.column_name())

    def _table(self, model: Type[Model]) -> str:
        return self.dialect.format_table(model._meta.table_name)

    # Reads -------------------------------------------------------------
    def select_sql(self, model: Type[Model]) -> str:
        columns = ", ".join(self._column(f) for f in model._meta.get_fields())
        return f"SELECT {columns} FROM {self._table(model)}"

    def rows_to_values(self, model: Type[Model], rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
        fields = list(model._meta.get_fields())
        return [{f.require_name(): row[idx] for idx, f in enumerate(fields)} for row in rows]

    def load_row(self, model: Type[Model], pk: Any) -> Optional[Dict[str, Any]]:
        pk_field = model._meta.primary_key
        ph = self.dialect.parameter_placeholder()
        sql = f"{self.select_sql(model)} WHERE {self._column(pk_field)} = {ph}"
        row = self.session.execute(sql, (pk,)).fetchone()
        if row is None:
            return None
        return self.rows_to_values(model, [row])[0]

    def load_by(
        self,
        model: Type[Model],
        field: Field,
        value: Any,
        *,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Rows of ``model`` whose ``field`` column equals ``value``; this is the
        statement behind collection loading.
        """
        ph = self.dialect.parameter_placeholder()
        order_field = model._meta.get_field(order_by) if order_by else model._meta.primary_key
        sql = (
            f"{self.select_sql(model)} WHERE {self._column(field)} = {ph} "
            f"ORDER BY {self._column(order_field)}"
        )
        rows = self.session.execute(sql, (value,)).fetchall()
        return self.rows_to_values(model, rows)

    # Writes ------------------------------------------------------------
    def insert(self, instance: Model) -> None:
        meta = instance._meta
        pk_field = meta.primary_key
        version_field = meta.version_field
        if version_field is not None and instance._field_values.get(version_field.name) is None:
            instance._field_values[version_field.name] = 0

        values = column_state(instance)
        columns: List[str] = []
        params: List[Any] = []
        for field in meta.get_fields():
            value = values[field.require_name()]
            if field is pk_field and value is None:
                continue
            columns.append(self._column(field))
            params.append(value)

        table = self._table(type(instance))
        if columns:
            placeholders = ", ".join(self.dialect.parameter_placeholder() for _ in columns)
            sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"

        needs_key = instance.pk is None
        if needs_key and self.dialect.supports_returning:
            sql += self.dialect.returning_clause(pk_field.column_name())
        cursor = self.session.execute(sql, params)
        if needs_key:
            generated = self.session.adapter.last_insert_id(cursor, meta.table_name, pk_field.column_name())
            instance._field_values[pk_field.require_name()] = pk_field.to_python(generated)

    def update(self, instance: Model, changes: Dict[str, Any]) -> None:
        meta = instance._meta
        pk_field = meta.primary_key
        version_field = meta.version_field
        ph = self.dialect.parameter_placeholder()

        set_clauses: List[str] = []
        params: List[Any] = []
        for name, value in changes.items():
            field = meta.get_field(name)
            if field is pk_field or field is version_field:
                continue
            set_clauses.append(f"{self._column(field)} = {ph}")
            params.append(value)
        if not set_clauses:
            return

        where = [f"{self._column(pk_field)} = {ph}"]
        where_params: List[Any] = [instance.pk]
        next_version = None
        if version_field is not None:
            current = instance._field_values.get(version_field.name) or 0
            next_version = current + 1
            set_clauses.append(f"{self._column(version_field)} = {ph}")
            params.append(next_version)
            where.append(f"{self._column(version_field)} = {ph}")
            where_params.append(current)

        sql = f"UPDATE {self._table(type(instance))} SET {', '.join(set_clauses)} WHERE {' AND '.join(where)}"
        cursor = self.session.execute(sql, params + where_params)
        if cursor.rowcount == 0:
            raise ConcurrentModificationError(type(instance), instance.pk)
        if next_version is not None:
            instance._field_values[version_field.name] = next_version

    def delete(self, instance: Model) -> None:
        meta = instance._meta
        ph = self.dialect.parameter_placeholder()
        where = [f"{self._column(meta.primary_key)} = {ph}"]
        params: List[Any] = [instance.pk]
        if meta.version_field is not None:
            where.append(f"{self._column(meta.version_field)} = {ph}")
            params.append(instance._field_values.get(meta.version_field.name) or 0)
        sql = f"DELETE FROM {self._table(type(instance))} WHERE {' AND '.join(where)}"
        cursor = self.session.execute(sql, params)
        if cursor.rowcount == 0:
            raise ConcurrentModificationError(type(instance), instance.pk)
