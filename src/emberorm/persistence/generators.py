"""
Table-backed primary key generation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..utils import get_logger

if TYPE_CHECKING:
    from .session import Session

GENERATOR_TABLE = "emberorm_sequences"


class TableGenerator:
    """
    Hands out keys from blocks reserved in :data:`GENERATOR_TABLE`.

    Each reservation advances the stored ``next_val`` by ``allocation_size``;
    keys inside the block are then assigned without further round trips.
    Blocks reserved inside a transaction that is rolled back are abandoned
    by :meth:`reset`.
    """

    def __init__(self, name: str, allocation_size: int = 50) -> None:
        self.name = name
        self.allocation_size = allocation_size
        self._next: Optional[int] = None
        self._limit: Optional[int] = None
        self.logger = get_logger("persistence.generators")

    def next_id(self, session: "Session") -> int:
        if self._next is None or self._limit is None or self._next >= self._limit:
            self._allocate(session)
        value = self._next
        self._next = value + 1
        return value

    def reset(self) -> None:
        self._next = None
        self._limit = None

    def _allocate(self, session: "Session") -> None:
        dialect = session.dialect
        table = dialect.format_table(GENERATOR_TABLE)
        name_col = dialect.quote_identifier("name")
        value_col = dialect.quote_identifier("next_val")
        ph = dialect.parameter_placeholder()

        cursor = session.execute(
            f"UPDATE {table} SET {value_col} = {value_col} + {ph} WHERE {name_col} = {ph}",
            (self.allocation_size, self.name),
        )
        if cursor.rowcount == 0:
            start = 1
            session.execute(
                f"INSERT INTO {table} ({name_col}, {value_col}) VALUES ({ph}, {ph})",
                (self.name, start + self.allocation_size),
            )
        else:
            row = session.execute(
                f"SELECT {value_col} FROM {table} WHERE {name_col} = {ph}",
                (self.name,),
            ).fetchone()
            start = int(row[0]) - self.allocation_size
        self._next = start
        self._limit = start + self.allocation_size
        self.logger.debug(
            "Generator '%s' reserved keys %s..%s", self.name, start, self._limit - 1
        )
