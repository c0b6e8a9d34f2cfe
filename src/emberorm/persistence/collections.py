"""
Lazy association holders.

Both holders wrap an explicit tagged state: ``Loaded`` carries the resolved
value, ``Unloaded`` carries the loader capability handed out by the owning
session. The first access that needs data calls the loader once and swaps the
state to ``Loaded`` for the rest of the holder's life.
"""

from __future__ import annotations

from collections.abc import MutableSequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, Iterator, List, TypeVar, Union

if TYPE_CHECKING:
    from ..core.model import Model
    from ..core.relations import Association

T = TypeVar("T")


@dataclass(frozen=True)
class Loaded(Generic[T]):
    value: T


@dataclass(frozen=True)
class Unloaded:
    loader: Callable[[], Any]
    pk: Any = None


AssociationState = Union[Loaded, Unloaded]


def _index_by_identity(items: Iterable[Any], target: Any) -> int:
    for idx, item in enumerate(items):
        if item is target:
            return idx
    return -1


def _contains_identity(items: Iterable[Any], target: Any) -> bool:
    return _index_by_identity(items, target) >= 0


class LazyReference:
    """
    To-one association holder.
    """

    __slots__ = ("_state",)

    def __init__(self, state: AssociationState) -> None:
        self._state = state

    @classmethod
    def loaded(cls, target: "Model") -> "LazyReference":
        return cls(Loaded(target))

    @classmethod
    def unloaded(cls, pk: Any, loader: Callable[[], Any]) -> "LazyReference":
        return cls(Unloaded(loader=loader, pk=pk))

    @property
    def is_initialized(self) -> bool:
        return isinstance(self._state, Loaded)

    @property
    def pk(self) -> Any:
        state = self._state
        if isinstance(state, Loaded):
            return state.value.pk if state.value is not None else None
        return state.pk

    def peek(self) -> "Model | None":
        """Return the target only if already loaded."""
        state = self._state
        return state.value if isinstance(state, Loaded) else None

    def get(self) -> "Model | None":
        state = self._state
        if isinstance(state, Unloaded):
            self._state = Loaded(state.loader())
        return self._state.value

    def __repr__(self) -> str:
        if isinstance(self._state, Loaded):
            return f"<LazyReference loaded {self._state.value!r}>"
        return f"<LazyReference unloaded pk={self._state.pk!r}>"


class PersistentList(MutableSequence):
    """
    To-many association holder behaving like a ``list``.

    Membership changes are measured against the contents seen at load time (or
    at the last flush) so the session can cascade additions and delete orphans.
    ``append`` on an unloaded list only queues the element.
    """

    def __init__(self, owner: "Model", name: str, state: AssociationState) -> None:
        self.owner = owner
        self.name = name
        self._state: AssociationState = state
        self._queued: List[Any] = []
        self._snapshot: List[Any] = []

    @classmethod
    def loaded(cls, owner: "Model", name: str, items: Iterable[Any]) -> "PersistentList":
        return cls(owner, name, Loaded(list(items)))

    @classmethod
    def unloaded(cls, owner: "Model", name: str, loader: Callable[[], Iterable[Any]]) -> "PersistentList":
        return cls(owner, name, Unloaded(loader=loader))

    # State ---------------------------------------------------------------
    @property
    def is_initialized(self) -> bool:
        return isinstance(self._state, Loaded)

    @property
    def association(self) -> "Association":
        from ..core.relations import relation_registry

        return relation_registry.edge(type(self.owner), self.name)

    def _items(self) -> List[Any]:
        state = self._state
        if isinstance(state, Unloaded):
            self._initialize(list(state.loader()))
        return self._state.value

    def _initialize(self, fetched: List[Any]) -> None:
        merged = list(fetched)
        for item in self._queued:
            if not _contains_identity(merged, item):
                merged.append(item)
        self._state = Loaded(merged)
        self._snapshot = fetched
        self._queued = []

    def populate(self, fetched: Iterable[Any]) -> None:
        """
        Initialize from rows fetched elsewhere (prefetching); no-op when loaded.
        """
        if not self.is_initialized:
            self._initialize(list(fetched))

    def peek(self) -> List[Any]:
        """
        Elements known without loading: the contents when initialized, else the queue.
        """
        if isinstance(self._state, Loaded):
            return list(self._state.value)
        return list(self._queued)

    def added(self) -> List[Any]:
        if not self.is_initialized:
            return list(self._queued)
        return [item for item in self._state.value if not _contains_identity(self._snapshot, item)]

    def removed(self) -> List[Any]:
        if not self.is_initialized:
            return []
        return [item for item in self._snapshot if not _contains_identity(self._state.value, item)]

    def has_delta(self) -> bool:
        return bool(self.added() or self.removed())

    def mark_clean(self) -> None:
        if self.is_initialized:
            self._snapshot = list(self._state.value)
        self._queued = []

    def reset(self, loader: Callable[[], Iterable[Any]]) -> None:
        self._state = Unloaded(loader=loader)
        self._queued = []
        self._snapshot = []

    def replace(self, items: Iterable[Any]) -> None:
        current = self._items()
        current[:] = list(items)

    # MutableSequence protocol -------------------------------------------
    def __getitem__(self, index):
        return self._items()[index]

    def __setitem__(self, index, value) -> None:
        self._items()[index] = value

    def __delitem__(self, index) -> None:
        del self._items()[index]

    def __len__(self) -> int:
        return len(self._items())

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._items()))

    def __contains__(self, value: object) -> bool:
        return value in self._items()

    def insert(self, index: int, value: Any) -> None:
        self._items().insert(index, value)

    def append(self, value: Any) -> None:
        if isinstance(self._state, Unloaded):
            if not _contains_identity(self._queued, value):
                self._queued.append(value)
            return
        self._state.value.append(value)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PersistentList):
            return self._items() == other._items()
        if isinstance(other, (list, tuple)):
            return self._items() == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        if self.is_initialized:
            return f"PersistentList({self._state.value!r})"
        return f"<PersistentList {type(self.owner).__name__}.{self.name} (uninitialized)>"


def is_initialized(target: Any, attribute: str | None = None) -> bool:
    """
    Report whether a lazy association has been loaded.

    Accepts a collection or reference holder directly, or an entity plus the
    name of one of its associations. Anything else is always initialized.
    """
    if attribute is not None:
        holder = target._related_cache.get(attribute)
        if holder is None:
            return True
        return holder.is_initialized
    if isinstance(target, (PersistentList, LazyReference)):
        return target.is_initialized
    return True
