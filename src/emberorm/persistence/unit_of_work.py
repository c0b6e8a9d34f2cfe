"""
Unit of Work bookkeeping: scheduled inserts, deletes and flush ordering.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Iterable, List

from ..core.model import Model, dependency_rank
from .change_tracker import ChangeTracker
from .errors import ConcurrentModificationError


class UnitOfWork:
    """
    Tracks entities scheduled for insertion and deletion within a session.

    Containers are keyed by object identity since entities without a primary
    key are unhashable.
    """

    def __init__(self) -> None:
        self.new: "OrderedDict[int, Model]" = OrderedDict()
        self.deleted: "OrderedDict[int, Model]" = OrderedDict()
        self.conflicts: List[ConcurrentModificationError] = []

    # Registration methods ----------------------------------------------
    def register_new(self, instance: Model) -> None:
        self.deleted.pop(id(instance), None)
        self.new[id(instance)] = instance

    def register_deleted(self, instance: Model) -> bool:
        """
        Schedule a DELETE. Returns False when the entity was never inserted,
        in which case nothing is scheduled.
        """
        if self.new.pop(id(instance), None) is not None:
            return False
        self.deleted[id(instance)] = instance
        return True

    def record_conflict(self, error: ConcurrentModificationError) -> None:
        self.conflicts.append(error)

    def is_new(self, instance: Model) -> bool:
        return self.new.get(id(instance)) is instance

    def is_deleted(self, instance: Model) -> bool:
        return self.deleted.get(id(instance)) is instance

    def forget(self, instance: Model) -> None:
        if self.is_new(instance):
            del self.new[id(instance)]
        if self.is_deleted(instance):
            del self.deleted[id(instance)]

    # Flush planning ------------------------------------------------------
    def collect_dirty(self, candidates: Iterable[Model], tracker: ChangeTracker) -> List[Model]:
        return [
            instance
            for instance in candidates
            if not self.is_new(instance)
            and not self.is_deleted(instance)
            and tracker.diff(instance)
        ]

    def ordered_inserts(self) -> List[Model]:
        pending = list(self.new.values())
        return sorted(pending, key=lambda inst: dependency_rank(type(inst)))

    def ordered_deletes(self) -> List[Model]:
        pending = list(self.deleted.values())
        return sorted(pending, key=lambda inst: -dependency_rank(type(inst)))

    def has_pending(self) -> bool:
        return bool(self.new or self.deleted or self.conflicts)

    def clear(self) -> None:
        self.new.clear()
        self.deleted.clear()
        self.conflicts.clear()

    def counts(self) -> Dict[str, int]:
        return {"new": len(self.new), "deleted": len(self.deleted)}
