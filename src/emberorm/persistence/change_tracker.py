"""
Snapshot-based dirty checking for managed entities.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from ..core.model import Model
from ..core.relations import ManyToOne
from .collections import PersistentList


def column_state(instance: Model) -> Dict[str, Any]:
    """
    Current column values; to-one references are reduced to their key.
    """
    state: Dict[str, Any] = {}
    for field in instance._meta.get_fields():
        if isinstance(field, ManyToOne):
            state[field.require_name()] = field.fk_value(instance)
        else:
            state[field.require_name()] = instance._field_values.get(field.require_name())
    return state


class ChangeTracker:
    """
    Keeps the last known persisted state of each managed entity.

    Scalar and foreign-key columns are compared by value. Collections are
    compared by membership through their own delta bookkeeping.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[int, Tuple[Model, Dict[str, Any]]] = {}

    def snapshot(self, instance: Model) -> None:
        self._snapshots[id(instance)] = (instance, column_state(instance))

    def snapshot_of(self, instance: Model) -> Dict[str, Any] | None:
        entry = self._snapshots.get(id(instance))
        if entry is None or entry[0] is not instance:
            return None
        return dict(entry[1])

    def is_tracked(self, instance: Model) -> bool:
        return self.snapshot_of(instance) is not None

    def forget(self, instance: Model) -> None:
        entry = self._snapshots.get(id(instance))
        if entry is not None and entry[0] is instance:
            del self._snapshots[id(instance)]

    def clear(self) -> None:
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)

    def diff(self, instance: Model) -> Dict[str, Any]:
        snapshot = self.snapshot_of(instance)
        if snapshot is None:
            return {}
        current = column_state(instance)
        return {
            name: value
            for name, value in current.items()
            if name in snapshot and snapshot[name] != value
        }

    @staticmethod
    def collection_deltas(instance: Model) -> List[PersistentList]:
        changed = []
        for name in instance._meta.collections:
            holder = instance._related_cache.get(name)
            if isinstance(holder, PersistentList) and holder.has_delta():
                changed.append(holder)
        return changed

    def is_dirty(self, instance: Model) -> bool:
        return bool(self.diff(instance)) or bool(self.collection_deltas(instance))
