"""
Error hierarchy raised by the persistence context.
"""

from __future__ import annotations

from typing import Any


class PersistenceError(RuntimeError):
    """Base class for persistence-context failures."""


class DuplicateIdentityError(PersistenceError):
    """
    A second, distinct instance claimed a ``(type, pk)`` already managed by the context.
    """

    def __init__(self, model: type, pk: Any) -> None:
        self.model = model
        self.pk = pk
        super().__init__(
            f"A different {model.__name__} instance with id {pk!r} is already managed by this session"
        )


class ConcurrentModificationError(PersistenceError):
    """
    Optimistic-lock failure: the persisted state no longer matches what the caller held.
    """

    def __init__(self, model: type, pk: Any, message: str | None = None) -> None:
        self.model = model
        self.pk = pk
        super().__init__(
            message
            or f"{model.__name__} with id {pk!r} was updated or deleted by another transaction"
        )


class LazyInitializationError(PersistenceError):
    """Lazy association accessed without an open owning session."""


class TransactionRequiredError(PersistenceError):
    """Operation needs an active transaction."""


class EntityStateError(PersistenceError):
    """Illegal lifecycle transition, e.g. persisting a detached entity."""


class TransientReferenceError(PersistenceError):
    """A managed entity references an unsaved entity over a non-cascading edge."""
