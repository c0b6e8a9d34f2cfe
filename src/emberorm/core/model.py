"""
Entity base class and metadata orchestration for EmberORM.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Type, TypeVar

from ..utils import camel_to_snake
from .fields import AutoField, Field, VersionField
from .relations import Association, ManyToOne, OneToMany, relation_registry


class ModelConfigurationError(Exception):
    """Raised when a model class is misconfigured."""


@dataclass
class ModelOptions:
    """
    Mapping metadata calculated by :class:`ModelMeta`.
    """

    model: Type["Model"]
    table_name: str = ""
    abstract: bool = False
    fields: "OrderedDict[str, Field]" = field(default_factory=OrderedDict)
    collections: "OrderedDict[str, OneToMany]" = field(default_factory=OrderedDict)
    primary_key: Optional[Field] = None
    version_field: Optional[VersionField] = None

    def add_field(self, field_obj: Field) -> None:
        if field_obj.name in self.fields or field_obj.name in self.collections:
            raise ModelConfigurationError(
                f"Duplicate field name '{field_obj.name}' on model '{self.model.__name__}'"
            )
        self.fields[field_obj.name] = field_obj
        if field_obj.primary_key:
            if self.primary_key and self.primary_key is not field_obj:
                raise ModelConfigurationError(
                    f"Multiple primary keys defined on model '{self.model.__name__}'"
                )
            self.primary_key = field_obj
        if isinstance(field_obj, VersionField):
            if self.version_field is not None:
                raise ModelConfigurationError(
                    f"Multiple version fields defined on model '{self.model.__name__}'"
                )
            self.version_field = field_obj

    def add_collection(self, relation: OneToMany) -> None:
        if relation.name in self.fields or relation.name in self.collections:
            raise ModelConfigurationError(
                f"Duplicate field name '{relation.name}' on model '{self.model.__name__}'"
            )
        self.collections[relation.name] = relation

    def get_field(self, name: str) -> Field:
        try:
            return self.fields[name]
        except KeyError as exc:
            raise KeyError(f"Unknown field '{name}' on model '{self.model.__name__}'") from exc

    def get_fields(self) -> Iterable[Field]:
        return self.fields.values()

    def many_to_one(self) -> List[ManyToOne]:
        return [f for f in self.fields.values() if isinstance(f, ManyToOne)]

    @property
    def associations(self) -> List[Association]:
        return relation_registry.edges(self.model)

    @property
    def generation(self):
        pk = self.primary_key
        return pk.strategy if isinstance(pk, AutoField) else None


TModel = TypeVar("TModel", bound="Model")


class ModelMeta(type):
    """
    Metaclass collecting fields and registering associations.
    """

    def __new__(mcls, name: str, bases: tuple[type, ...], attrs: Dict[str, Any]) -> "ModelMeta":
        if name == "Model" and bases == (object,):
            return super().__new__(mcls, name, bases, attrs)

        declared: Dict[str, Any] = {}
        for attr_name, value in list(attrs.items()):
            if isinstance(value, (Field, OneToMany)):
                declared[attr_name] = attrs.pop(attr_name)

        cls = super().__new__(mcls, name, bases, attrs)

        meta = getattr(cls, "Meta", None)
        table_name = camel_to_snake(name)
        abstract = False
        if meta:
            table_name = getattr(meta, "table", table_name)
            abstract = getattr(meta, "abstract", False)

        cls._meta = ModelOptions(model=cls, table_name=table_name, abstract=abstract)

        for attr_name, value in sorted(declared.items(), key=lambda item: item[1].creation_counter):
            value.contribute_to_class(cls, attr_name)
            if isinstance(value, OneToMany):
                cls._meta.add_collection(value)
                relation_registry.register_field(cls, value)
                continue
            cls._meta.add_field(value)
            if isinstance(value, ManyToOne):
                relation_registry.register_field(cls, value)

        if not cls._meta.primary_key and not cls._meta.abstract:
            if "id" in cls._meta.fields:
                raise ModelConfigurationError(
                    f"Model '{cls.__name__}' defines a field named 'id' but no primary key. "
                    "Either set primary_key=True on that field or define a different name."
                )
            auto_field = AutoField()
            auto_field.contribute_to_class(cls, "id")
            cls._meta.add_field(auto_field)
            cls._meta.fields = OrderedDict(
                sorted(
                    cls._meta.fields.items(),
                    key=lambda item: (0 if item[0] == "id" else 1, item[1].creation_counter),
                )
            )

        relation_registry.register_model(cls)
        return cls


class Model(metaclass=ModelMeta):
    """
    Base entity class. Instances hold plain field values; all persistence
    behaviour lives in :class:`emberorm.persistence.Session`.
    """

    def __init__(self, **kwargs: Any) -> None:
        self._field_values: Dict[str, Any] = {}
        self._related_cache: Dict[str, Any] = {}
        self._persisted = False

        unknown = set(kwargs) - set(self._meta.fields) - set(self._meta.collections)
        if unknown:
            raise TypeError(
                f"{self.__class__.__name__}() got unexpected arguments: {', '.join(sorted(unknown))}"
            )

        for field_obj in self._meta.get_fields():
            if field_obj.name in kwargs:
                setattr(self, field_obj.name, kwargs[field_obj.name])
            elif field_obj.has_default:
                default_value = field_obj.get_default()
                if default_value is not None:
                    setattr(self, field_obj.name, default_value)

        for name in self._meta.collections:
            if name in kwargs:
                setattr(self, name, kwargs[name])

    @classmethod
    def _from_db(cls: Type[TModel], values: Dict[str, Any]) -> TModel:
        """
        Build an instance from column values without running defaults or setters.
        """
        instance = cls.__new__(cls)
        instance._field_values = {}
        instance._related_cache = {}
        instance._persisted = True
        for name, value in values.items():
            instance._field_values[name] = cls._meta.get_field(name).from_db(value)
        return instance

    def __repr__(self) -> str:
        field_parts = ", ".join(
            f"{name}={self._field_values[name]!r}"
            for name in self._meta.fields
            if name in self._field_values
        )
        return f"<{self.__class__.__name__} {field_parts}>"

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, Model) or type(self) is not type(other):
            return NotImplemented
        pk = self.pk
        return pk is not None and pk == other.pk

    def __hash__(self) -> int:
        pk = self.pk
        if pk is None:
            raise TypeError("Entity instances without a primary key value are unhashable")
        return hash((self.__class__, pk))

    @property
    def pk(self) -> Any:
        if not self._meta.primary_key:
            raise ModelConfigurationError(
                f"Model '{self.__class__.__name__}' does not define a primary key."
            )
        return self._field_values.get(self._meta.primary_key.name)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for field_obj in self._meta.get_fields():
            if isinstance(field_obj, ManyToOne):
                result[field_obj.name] = field_obj.fk_value(self)
            else:
                result[field_obj.name] = getattr(self, field_obj.name)
        return result

    # Validation --------------------------------------------------------
    def full_clean(self) -> None:
        from ..validation import validate_instance

        validate_instance(self)

    def clean(self) -> None:
        """
        Hook for subclasses to implement model-level validation.
        """
        return None

    @classmethod
    def register_hook(cls, event: str, handler) -> None:
        from ..hooks import hooks

        hooks.register(event, handler, model=cls)


def dependency_rank(model: Type[Model], _seen: Optional[Set[Type[Model]]] = None) -> int:
    """
    Depth of a model in the foreign-key graph; referenced tables rank lower.
    Self references are ignored.
    """
    seen = _seen or set()
    if model in seen:
        return 0
    seen = seen | {model}
    rank = 0
    for field_obj in model._meta.many_to_one():
        target = field_obj.remote_model
        if target is None or target is model:
            continue
        rank = max(rank, dependency_rank(target, seen) + 1)
    return rank


def sort_by_dependency(models: Iterable[Type[Model]]) -> List[Type[Model]]:
    return sorted(dict.fromkeys(models), key=dependency_rank)
