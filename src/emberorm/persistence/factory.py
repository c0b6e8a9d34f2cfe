"""
Session factory holding connection configuration and mapped models.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Optional, Type, Union

from ..adapters import adapter_for
from ..adapters.base import ConnectionConfig, DatabaseAdapter
from ..core.model import Model
from ..core.relations import relation_registry
from ..utils import get_logger
from .session import FlushMode, Session


class SessionFactory:
    """
    Opens sessions against one database.

    Every session gets its own adapter (and therefore its own connection),
    so sessions never share managed instances. With SQLite this means an
    in-memory URL gives each session a private, empty database; use a file
    path to share data between sessions.
    """

    def __init__(
        self,
        config: Union[ConnectionConfig, str, None] = None,
        *,
        models: Iterable[Type[Model]] = (),
        adapter_factory: Optional[Callable[[], DatabaseAdapter]] = None,
        flush_mode: FlushMode | str = FlushMode.AUTO,
        performance_threshold: int = 10,
    ) -> None:
        if config is None:
            config = ConnectionConfig.from_env()
        elif isinstance(config, str):
            config = ConnectionConfig.from_url(config)
        self.config = config
        self.models: List[Type[Model]] = list(dict.fromkeys(models))
        self.adapter_factory = adapter_factory or (lambda: adapter_for(self.config))
        self.flush_mode = FlushMode(flush_mode)
        self.performance_threshold = performance_threshold
        self.logger = get_logger("persistence.factory")
        self._closed = False

        unresolved = relation_registry.unresolved()
        if unresolved:
            self.logger.warning("Unresolved associations: %s", ", ".join(unresolved))

    def register(self, *models: Type[Model]) -> None:
        for model in models:
            if model not in self.models:
                self.models.append(model)

    def open_session(self) -> Session:
        if self._closed:
            raise RuntimeError("SessionFactory is closed.")
        return Session(
            self.adapter_factory(),
            connection_config=self.config,
            flush_mode=self.flush_mode,
            performance_threshold=self.performance_threshold,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Session with an open transaction: committed when the block exits
        normally, rolled back otherwise, and always closed.
        """
        with self.open_session() as session:
            yield session

    def create_schema(self) -> None:
        from ..schema import SchemaBuilder

        with self.session() as session:
            for statement in SchemaBuilder(session.dialect).create_all_sql(self.models):
                session.execute(statement)
        self.logger.info("Created schema for %d models on %s", len(self.models), self.config.descriptive_label())

    def drop_schema(self) -> None:
        from ..schema import SchemaBuilder

        with self.session() as session:
            for statement in SchemaBuilder(session.dialect).drop_all_sql(self.models):
                session.execute(statement)

    def close(self) -> None:
        self._closed = True

    @property
    def is_open(self) -> bool:
        return not self._closed
