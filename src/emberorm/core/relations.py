"""
Association fields and the per-model adjacency table used for cascades.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Type

from ..utils.naming import foreign_key_column
from .fields import Field

if TYPE_CHECKING:
    from .model import Model


class RelationshipError(RuntimeError):
    pass


class CascadeType(str, enum.Enum):
    PERSIST = "persist"
    MERGE = "merge"
    REMOVE = "remove"
    DETACH = "detach"
    REFRESH = "refresh"
    ALL = "all"


class FetchType(str, enum.Enum):
    LAZY = "lazy"
    EAGER = "eager"


MANY_TO_ONE = "many-to-one"
ONE_TO_MANY = "one-to-many"

_CONCRETE_CASCADES = frozenset(c for c in CascadeType if c is not CascadeType.ALL)


def normalize_cascade(cascade: Iterable[CascadeType | str] | CascadeType | str | None) -> FrozenSet[CascadeType]:
    if cascade is None:
        return frozenset()
    if isinstance(cascade, (str, CascadeType)):
        cascade = (cascade,)
    result = set()
    for item in cascade:
        value = CascadeType(item)
        if value is CascadeType.ALL:
            return _CONCRETE_CASCADES
        result.add(value)
    return frozenset(result)


@dataclass(frozen=True)
class Association:
    """
    One edge of the entity graph, as consulted by the cascade engine.
    """

    source: Type["Model"]
    name: str
    kind: str
    target: Type["Model"]
    cascade: FrozenSet[CascadeType]
    orphan_removal: bool
    fetch: FetchType
    mapped_by: Optional[str] = None

    @property
    def is_collection(self) -> bool:
        return self.kind == ONE_TO_MANY

    @property
    def is_lazy(self) -> bool:
        return self.fetch is FetchType.LAZY

    def cascades(self, operation: CascadeType) -> bool:
        if operation in self.cascade:
            return True
        # orphan removal implies removing the children together with the owner
        return operation is CascadeType.REMOVE and self.orphan_removal


class ManyToOne(Field):
    """
    Owning side of a relationship; stores the target's primary key in its column.
    """

    is_relation = True
    kind = MANY_TO_ONE

    def __init__(
        self,
        to: Type | str,
        *,
        fetch: FetchType | str = FetchType.EAGER,
        cascade: Iterable[CascadeType | str] | CascadeType | str | None = None,
        nullable: bool = True,
        on_delete: str | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("db_type", "INTEGER")
        super().__init__(nullable=nullable, **kwargs)
        self.to = to
        self.fetch = FetchType(fetch)
        self.cascade = normalize_cascade(cascade)
        self.on_delete = on_delete
        self.remote_model: Optional[Type["Model"]] = to if isinstance(to, type) else None

    def bind(self, model: type["Model"], name: str) -> None:
        if self.db_column is None:
            self.db_column = foreign_key_column(name)
        super().bind(model, name)

    def resolve_model(self, model: Type["Model"]) -> None:
        self.remote_model = model

    def association(self) -> Association:
        if self.remote_model is None or self.model is None:
            raise RelationshipError(f"Relation target '{self.to}' is not resolved.")
        return Association(
            source=self.model,
            name=self.require_name(),
            kind=self.kind,
            target=self.remote_model,
            cascade=self.cascade,
            orphan_removal=False,
            fetch=self.fetch,
        )

    # Descriptor protocol -------------------------------------------------
    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        ref = instance._related_cache.get(self.require_name())
        if ref is None:
            return None
        return ref.get()

    def __set__(self, instance: object, value: Any) -> None:
        from ..persistence.collections import LazyReference

        name = self.require_name()
        if value is None:
            if not self.nullable:
                raise ValueError(f"Field '{name}' cannot be None")
            instance._related_cache.pop(name, None)
            instance._field_values[name] = None
            return
        if self.remote_model is not None and not isinstance(value, self.remote_model):
            raise TypeError(
                f"'{name}' expects a {self.remote_model.__name__} instance, got {type(value).__name__}"
            )
        instance._related_cache[name] = LazyReference.loaded(value)
        instance._field_values[name] = value.pk

    def fk_value(self, instance: "Model") -> Any:
        """
        Current column value: the referenced entity's key, which may have been
        assigned after the reference was set.
        """
        name = self.require_name()
        ref = instance._related_cache.get(name)
        if ref is not None:
            return ref.pk
        return instance._field_values.get(name)


class OneToMany:
    """
    Inverse side of a :class:`ManyToOne`; exposes a :class:`PersistentList`.
    """

    is_relation = True
    kind = ONE_TO_MANY

    _creation_counter = 0

    def __init__(
        self,
        to: Type | str,
        *,
        mapped_by: str,
        cascade: Iterable[CascadeType | str] | CascadeType | str | None = None,
        orphan_removal: bool = False,
        fetch: FetchType | str = FetchType.LAZY,
        order_by: Optional[str] = None,
    ) -> None:
        self.to = to
        self.mapped_by = mapped_by
        self.cascade = normalize_cascade(cascade)
        self.orphan_removal = orphan_removal
        self.fetch = FetchType(fetch)
        self.order_by = order_by
        self.remote_model: Optional[Type["Model"]] = to if isinstance(to, type) else None
        self.model: Optional[Type["Model"]] = None
        self.name: Optional[str] = None
        self.creation_counter = Field._creation_counter
        Field._creation_counter += 1

    def contribute_to_class(self, model: Type["Model"], name: str) -> None:
        self.model = model
        self.name = name
        setattr(model, name, self)

    def require_name(self) -> str:
        if self.name is None:
            raise RelationshipError("Relation name is not set.")
        return self.name

    def resolve_model(self, model: Type["Model"]) -> None:
        self.remote_model = model

    def mapped_field(self) -> ManyToOne:
        if self.remote_model is None:
            raise RelationshipError(f"Relation target '{self.to}' is not resolved.")
        field = self.remote_model._meta.fields.get(self.mapped_by)
        if not isinstance(field, ManyToOne):
            raise RelationshipError(
                f"'{self.remote_model.__name__}.{self.mapped_by}' is not a ManyToOne "
                f"and cannot back '{self.require_name()}'"
            )
        return field

    def association(self) -> Association:
        if self.remote_model is None or self.model is None:
            raise RelationshipError(f"Relation target '{self.to}' is not resolved.")
        return Association(
            source=self.model,
            name=self.require_name(),
            kind=self.kind,
            target=self.remote_model,
            cascade=self.cascade,
            orphan_removal=self.orphan_removal,
            fetch=self.fetch,
            mapped_by=self.mapped_by,
        )

    # Descriptor protocol -------------------------------------------------
    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        from ..persistence.collections import PersistentList

        name = self.require_name()
        collection = instance._related_cache.get(name)
        if collection is None:
            collection = PersistentList.loaded(instance, name, ())
            instance._related_cache[name] = collection
        return collection

    def __set__(self, instance: object, value: Iterable[Any]) -> None:
        from ..persistence.collections import PersistentList

        name = self.require_name()
        items = list(value or ())
        collection = instance._related_cache.get(name)
        if isinstance(collection, PersistentList):
            if collection is value:
                return
            collection.replace(items)
            return
        instance._related_cache[name] = PersistentList.loaded(instance, name, items)


class RelationRegistry:
    """
    Resolves string targets and keeps the adjacency table of every model.
    """

    def __init__(self) -> None:
        self.models: Dict[str, Type["Model"]] = {}
        self.pending: List[Tuple[Type["Model"], Any]] = []
        self.adjacency: Dict[Type["Model"], Dict[str, Association]] = {}

    def register_model(self, model: Type["Model"]) -> None:
        self.models[model.__name__] = model
        self.adjacency.setdefault(model, {})
        self._resolve_pending()

    def register_field(self, model: Type["Model"], field: Any) -> None:
        self.pending.append((model, field))

    def edges(self, model: Type["Model"]) -> List[Association]:
        return list(self.adjacency.get(model, {}).values())

    def edge(self, model: Type["Model"], name: str) -> Association:
        try:
            return self.adjacency[model][name]
        except KeyError as exc:
            raise RelationshipError(f"'{model.__name__}' has no resolved association '{name}'") from exc

    def unresolved(self) -> List[str]:
        return [f"{model.__name__}.{field.name} -> {field.to}" for model, field in self.pending]

    def _resolve_pending(self) -> None:
        unresolved = []
        for model, field in self.pending:
            target = self._resolve_target(field.to)
            if target is None:
                unresolved.append((model, field))
                continue
            field.resolve_model(target)
            if isinstance(field, OneToMany) and field.mapped_by not in target._meta.fields:
                self.pending = [entry for entry in self.pending if entry[1] is not field]
                raise RelationshipError(
                    f"'{model.__name__}.{field.name}' is mapped by unknown field "
                    f"'{target.__name__}.{field.mapped_by}'"
                )
            self.adjacency.setdefault(model, {})[field.require_name()] = field.association()
        self.pending = unresolved

    def _resolve_target(self, target: Type | str) -> Optional[Type["Model"]]:
        if isinstance(target, type):
            return target
        label = target.split(".")[-1]
        return self.models.get(label)


relation_registry = RelationRegistry()
