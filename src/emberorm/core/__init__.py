"""
Core building blocks for EmberORM entities and mapping metadata.
"""

from .fields import (
    AutoField,
    BooleanField,
    DateTimeField,
    Field,
    FloatField,
    GenerationType,
    IntegerField,
    StringField,
    VersionField,
)
from .model import (
    Model,
    ModelConfigurationError,
    ModelMeta,
    ModelOptions,
    dependency_rank,
    sort_by_dependency,
)
from .relations import (
    Association,
    CascadeType,
    FetchType,
    ManyToOne,
    OneToMany,
    RelationshipError,
    relation_registry,
)

__all__ = [
    "Association",
    "AutoField",
    "BooleanField",
    "CascadeType",
    "DateTimeField",
    "FetchType",
    "Field",
    "FloatField",
    "GenerationType",
    "IntegerField",
    "ManyToOne",
    "Model",
    "ModelConfigurationError",
    "ModelMeta",
    "ModelOptions",
    "OneToMany",
    "RelationshipError",
    "StringField",
    "VersionField",
    "dependency_rank",
    "relation_registry",
    "sort_by_dependency",
]
