"""
EmberORM public package initialization.

Entities are declared as :class:`Model` subclasses and handled through a
:class:`Session` (the persistence context) opened from a
:class:`SessionFactory`.
"""

from .core.model import Model, ModelConfigurationError  # noqa: F401
from .core.fields import (
    AutoField,
    BooleanField,
    DateTimeField,
    FloatField,
    GenerationType,
    IntegerField,
    StringField,
    VersionField,
)  # noqa: F401
from .core.relations import CascadeType, FetchType, ManyToOne, OneToMany  # noqa: F401
from .hooks import hooks  # noqa: F401
from .persistence import (  # noqa: F401
    ConcurrentModificationError,
    DuplicateIdentityError,
    EntityState,
    EntityStateError,
    FlushMode,
    LazyInitializationError,
    PersistenceError,
    Session,
    SessionFactory,
    TransactionRequiredError,
    TransientReferenceError,
    is_initialized,
)
from .query import Q, QuerySet  # noqa: F401
from .schema import SchemaBuilder  # noqa: F401
from .validation import ValidationError  # noqa: F401

__all__ = [
    "Model",
    "AutoField",
    "BooleanField",
    "DateTimeField",
    "FloatField",
    "GenerationType",
    "IntegerField",
    "StringField",
    "VersionField",
    "CascadeType",
    "FetchType",
    "ManyToOne",
    "OneToMany",
    "ModelConfigurationError",
    "ConcurrentModificationError",
    "DuplicateIdentityError",
    "EntityState",
    "EntityStateError",
    "FlushMode",
    "LazyInitializationError",
    "PersistenceError",
    "Session",
    "SessionFactory",
    "TransactionRequiredError",
    "TransientReferenceError",
    "is_initialized",
    "QuerySet",
    "Q",
    "SchemaBuilder",
    "ValidationError",
    "hooks",
]
