"""
Propagation of entity operations along association edges.
"""

from __future__ import annotations

from typing import Any, Callable, List

from ..core.model import Model
from ..core.relations import Association, CascadeType, RelationRegistry, relation_registry
from ..utils import get_logger


class CascadeEngine:
    """
    Walks the adjacency table and applies an action to associated entities.

    Only already-loaded associations are visited unless ``force`` is set;
    forcing initializes lazy holders, which removal needs so that children
    stored only in the database are deleted too.
    """

    def __init__(self, registry: RelationRegistry = relation_registry) -> None:
        self.registry = registry
        self.logger = get_logger("persistence.cascade")

    def targets(self, instance: Model, edge: Association, *, force: bool = False) -> List[Model]:
        holder = instance._related_cache.get(edge.name)
        if holder is None:
            return []
        if edge.is_collection:
            return list(holder) if force else holder.peek()
        target = holder.get() if force else holder.peek()
        return [target] if target is not None else []

    def cascade(
        self,
        operation: CascadeType,
        instance: Model,
        action: Callable[[Model], Any],
        *,
        force: bool = False,
    ) -> None:
        for edge in self.registry.edges(type(instance)):
            if not edge.cascades(operation):
                continue
            targets = self.targets(instance, edge, force=force)
            if targets:
                self.logger.debug(
                    "Cascading %s over %s.%s to %d entities",
                    operation.value,
                    edge.source.__name__,
                    edge.name,
                    len(targets),
                )
            for target in targets:
                action(target)
