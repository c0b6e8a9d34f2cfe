"""
Entity lifecycle callbacks.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from ..core.model import Model


HookHandler = Callable[..., None]

LIFECYCLE_EVENTS = frozenset(
    {
        "pre_persist",
        "post_persist",
        "pre_update",
        "post_update",
        "pre_remove",
        "post_remove",
        "post_load",
        "after_commit",
        "after_rollback",
    }
)


@dataclass(frozen=True)
class HookEvent:
    name: str


class HookDispatcher:
    """
    Maintains global and per-model handlers for lifecycle events.

    ``pre_persist`` fires when an entity becomes managed, ``post_persist``
    after its INSERT; ``pre_update``/``post_update`` and
    ``pre_remove``/``post_remove`` bracket flushed UPDATEs and DELETEs;
    ``post_load`` fires after an entity is materialized. ``after_commit`` and
    ``after_rollback`` receive ``None`` as instance.
    """

    def __init__(self) -> None:
        self._global_handlers: Dict[str, List[HookHandler]] = defaultdict(list)
        self._model_handlers: Dict[Type[Model], Dict[str, List[HookHandler]]] = defaultdict(
            lambda: defaultdict(list)
        )

    @staticmethod
    def _check(event: str) -> None:
        if event not in LIFECYCLE_EVENTS:
            raise ValueError(f"Unknown lifecycle event '{event}'")

    def register(self, event: str, handler: HookHandler, *, model: Optional[Type[Model]] = None) -> None:
        self._check(event)
        if model:
            self._model_handlers[model][event].append(handler)
        else:
            self._global_handlers[event].append(handler)

    def unregister(self, event: str, handler: HookHandler, *, model: Optional[Type[Model]] = None) -> None:
        self._check(event)
        handlers = self._model_handlers[model][event] if model else self._global_handlers[event]
        if handler in handlers:
            handlers.remove(handler)

    def fire(self, event: str, instance: Optional[Model], **context: Any) -> None:
        handlers = list(self._global_handlers.get(event, []))
        if instance is not None:
            for model in type(instance).__mro__:
                handlers.extend(self._model_handlers.get(model, {}).get(event, []))
        for handler in handlers:
            handler(instance, **context)

    def clear(self) -> None:
        self._global_handlers.clear()
        self._model_handlers.clear()


hooks = HookDispatcher()
