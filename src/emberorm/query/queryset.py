"""
QuerySet implementation providing a chainable query API.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from ..core.relations import ManyToOne, OneToMany
from ..persistence.collections import LazyReference
from .compiler import SQLCompiler
from .expressions import Q

if TYPE_CHECKING:
    from ..core.model import Model
    from ..persistence.session import Session

TModel = TypeVar("TModel", bound="Model")


class QuerySet(Generic[TModel]):
    """
    Chainable, immutable query bound to the session that created it.

    Results are materialized through the session's identity map, so rows that
    are already managed come back as the managed instances. With the session
    in ``FlushMode.AUTO`` pending changes are flushed before the query runs.
    """

    def __init__(
        self,
        model: type[TModel],
        *,
        session: "Session",
        where: Optional[Q] = None,
        ordering: Tuple[str, ...] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        prefetch_related: Tuple[str, ...] = (),
    ) -> None:
        self.model = model
        self.session = session
        self._where = where or Q()
        self._ordering = ordering
        self._limit = limit
        self._offset = offset
        self._prefetch_related = prefetch_related

    # Public API --------------------------------------------------------
    def filter(self, **lookups: Any) -> "QuerySet[TModel]":
        return self._clone(where=self._where & Q(**lookups))

    def exclude(self, **lookups: Any) -> "QuerySet[TModel]":
        return self._clone(where=self._where & ~Q(**lookups))

    def where(self, q_object: Q) -> "QuerySet[TModel]":
        return self._clone(where=self._where & q_object)

    def order_by(self, *fields: str) -> "QuerySet[TModel]":
        return self._clone(ordering=tuple(fields))

    def limit(self, value: int) -> "QuerySet[TModel]":
        return self._clone(limit=value)

    def offset(self, value: int) -> "QuerySet[TModel]":
        return self._clone(offset=value)

    def prefetch_related(self, *names: str) -> "QuerySet[TModel]":
        """
        Load the named associations of every result with one extra query each.
        """
        if not names:
            raise ValueError("prefetch_related() requires at least one association name.")
        for name in names:
            self._association_field(name)
        return self._clone(prefetch_related=tuple(dict.fromkeys(self._prefetch_related + names)))

    def to_sql(self) -> tuple[str, list[Any]]:
        return self._compiler().compile()

    def all(self) -> List[TModel]:
        return list(self)

    def first(self) -> Optional[TModel]:
        ordering = self._ordering or (self.model._meta.primary_key.require_name(),)
        results = self._clone(ordering=ordering, limit=1).all()
        return results[0] if results else None

    def count(self) -> int:
        self.session.auto_flush()
        sql, params = self._compiler().compile_count()
        row = self.session.execute(sql, params).fetchone()
        return int(row[0])

    def exists(self) -> bool:
        return self._clone(limit=1).first() is not None

    def __iter__(self) -> Iterator[TModel]:
        self.session.auto_flush()
        sql, params = self.to_sql()
        rows = self.session.execute(sql, params).fetchall()
        persister = self.session.persister
        instances = [
            self.session.materialize(self.model, values)
            for values in persister.rows_to_values(self.model, rows)
        ]
        # rows scheduled for deletion are invisible, as with find()
        instances = [i for i in instances if not self.session.unit_of_work.is_deleted(i)]
        for name in self._prefetch_related:
            self._prefetch(instances, name)
        return iter(instances)

    # Internal helpers --------------------------------------------------
    def _compiler(self) -> SQLCompiler:
        return SQLCompiler(
            model=self.model,
            dialect=self.session.dialect,
            where=self._where,
            ordering=self._ordering,
            limit=self._limit,
            offset=self._offset,
        )

    def _clone(self, **overrides: Any) -> "QuerySet[TModel]":
        params = {
            "session": self.session,
            "where": self._where,
            "ordering": self._ordering,
            "limit": self._limit,
            "offset": self._offset,
            "prefetch_related": self._prefetch_related,
        }
        params.update(overrides)
        return QuerySet(self.model, **params)

    def _association_field(self, name: str):
        meta = self.model._meta
        if name in meta.collections:
            return meta.collections[name]
        field = meta.fields.get(name)
        if isinstance(field, ManyToOne):
            return field
        raise ValueError(f"'{self.model.__name__}.{name}' is not an association")

    def _prefetch(self, instances: List[TModel], name: str) -> None:
        if not instances:
            return
        field = self._association_field(name)
        if isinstance(field, OneToMany):
            self._prefetch_collection(instances, field)
        else:
            self._prefetch_reference(instances, field)

    def _prefetch_collection(self, instances: List[TModel], relation: OneToMany) -> None:
        name = relation.require_name()
        owners = [obj for obj in instances if not getattr(obj, name).is_initialized]
        if not owners:
            return
        mapped = relation.mapped_field()
        children = (
            QuerySet(relation.remote_model, session=self.session)
            .filter(**{f"{mapped.require_name()}__in": [obj.pk for obj in owners]})
            .order_by(relation.order_by or relation.remote_model._meta.primary_key.require_name())
            .all()
        )
        bucket: Dict[Any, List[Any]] = {obj.pk: [] for obj in owners}
        for child in children:
            bucket.setdefault(mapped.fk_value(child), []).append(child)
        for obj in owners:
            getattr(obj, name).populate(bucket[obj.pk])

    def _prefetch_reference(self, instances: List[TModel], field: ManyToOne) -> None:
        name = field.require_name()
        pending = [
            obj
            for obj in instances
            if name in obj._related_cache and not obj._related_cache[name].is_initialized
        ]
        keys = list(dict.fromkeys(obj._related_cache[name].pk for obj in pending))
        if not keys:
            return
        remote_pk = field.remote_model._meta.primary_key.require_name()
        targets = QuerySet(field.remote_model, session=self.session).filter(**{f"{remote_pk}__in": keys}).all()
        by_pk = {target.pk: target for target in targets}
        for obj in pending:
            target = by_pk.get(obj._related_cache[name].pk)
            if target is not None:
                obj._related_cache[name] = LazyReference.loaded(target)
