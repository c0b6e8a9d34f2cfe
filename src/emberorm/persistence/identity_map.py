"""
Identity map ensuring a single in-memory instance per row.
"""

from __future__ import annotations

from threading import RLock
from typing import Any, Dict, List, Optional, Tuple, Type

from ..core.model import Model
from .errors import DuplicateIdentityError

IdentityKey = Tuple[Type[Model], Any]


class IdentityMap:
    """
    Stores managed instances keyed by (model, primary key).
    """

    def __init__(self) -> None:
        self._store: Dict[IdentityKey, Model] = {}
        self._lock = RLock()

    @staticmethod
    def key_for(instance: Model) -> IdentityKey:
        return (instance.__class__, instance.pk)

    def register(self, instance: Model) -> Model:
        pk = instance.pk
        if pk is None:
            raise ValueError(f"Cannot register {instance.__class__.__name__} without a primary key")
        key = self.key_for(instance)
        with self._lock:
            existing = self._store.get(key)
            if existing is None:
                self._store[key] = instance
                return instance
            if existing is not instance:
                raise DuplicateIdentityError(instance.__class__, pk)
            return existing

    def lookup(self, model: Type[Model], pk: Any) -> Optional[Model]:
        with self._lock:
            return self._store.get((model, pk))

    def remove(self, instance: Model) -> None:
        pk = instance.pk
        if pk is None:
            return
        key = self.key_for(instance)
        with self._lock:
            if self._store.get(key) is instance:
                del self._store[key]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def values(self) -> List[Model]:
        with self._lock:
            return list(self._store.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, instance: object) -> bool:
        if not isinstance(instance, Model) or instance.pk is None:
            return False
        with self._lock:
            return self._store.get(self.key_for(instance)) is instance
