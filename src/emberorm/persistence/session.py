"""
Session management coordinating adapters, unit of work, and identity map.
"""

from __future__ import annotations

import enum
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Optional, Type, TypeVar

from ..adapters.base import AdapterError, ConnectionConfig, DatabaseAdapter
from ..core.fields import AutoField, GenerationType
from ..core.model import Model
from ..core.relations import CascadeType, FetchType, ManyToOne, OneToMany
from ..dialects.base import Dialect
from ..dialects.sqlite import SQLiteDialect
from ..utils import get_logger, redact_params, time_call
from ..utils.performance import PerformanceTracker, resolve_slow_query_ms
from .cascade import CascadeEngine
from .change_tracker import ChangeTracker
from .collections import LazyReference, PersistentList
from .errors import (
    ConcurrentModificationError,
    EntityStateError,
    LazyInitializationError,
    TransactionRequiredError,
    TransientReferenceError,
)
from .generators import TableGenerator
from .identity_map import IdentityMap
from .persister import EntityPersister
from .transaction import TransactionError, TransactionManager
from .unit_of_work import UnitOfWork

if TYPE_CHECKING:
    from ..hooks import HookDispatcher
    from ..query import QuerySet

TModel = TypeVar("TModel", bound=Model)


class FlushMode(str, enum.Enum):
    AUTO = "auto"
    COMMIT = "commit"


class EntityState(str, enum.Enum):
    TRANSIENT = "transient"
    MANAGED = "managed"
    DETACHED = "detached"
    REMOVED = "removed"


class Session:
    """
    Persistence context for one connection.

    A session hands out at most one instance per row (identity map), writes
    every change it can detect at flush time (snapshots plus collection
    deltas), propagates state transitions along associations (cascades) and
    resolves lazy associations while it stays open. Managed entities stay
    managed across commits until the session is closed, cleared, or a
    transaction is rolled back.
    """

    def __init__(
        self,
        adapter: DatabaseAdapter,
        *,
        connection_config: Optional[ConnectionConfig] = None,
        flush_mode: FlushMode | str = FlushMode.AUTO,
        performance_threshold: int = 10,
        hook_dispatcher: Optional["HookDispatcher"] = None,
    ) -> None:
        self.adapter = adapter
        self.dialect: Dialect = adapter.dialect if hasattr(adapter, "dialect") else SQLiteDialect()
        self.connection_config = connection_config or ConnectionConfig(url="sqlite:///:memory:")
        self.flush_mode = FlushMode(flush_mode)
        self.identity_map = IdentityMap()
        self.change_tracker = ChangeTracker()
        self.unit_of_work = UnitOfWork()
        self.cascades = CascadeEngine()
        self.persister = EntityPersister(self)
        self.transaction_manager = TransactionManager(adapter)
        if hook_dispatcher is None:
            from ..hooks import hooks as hook_dispatcher
        self.hooks = hook_dispatcher
        self.logger = get_logger("persistence.session")
        self.performance = PerformanceTracker(self.logger, n_plus_one_threshold=performance_threshold)
        self.slow_query_ms = resolve_slow_query_ms()
        self._generators: Dict[str, TableGenerator] = {}
        self._lazy_depth = 0
        self._closed = False
        self.adapter.connect(self.connection_config)

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "Session":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.transaction_manager.is_active:
                if exc_type:
                    self.rollback()
                else:
                    self.commit()
        finally:
            self.close()

    @property
    def is_open(self) -> bool:
        return not self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise EntityStateError("Session is closed.")

    # ------------------------------------------------------------------ #
    # Transaction boundary
    # ------------------------------------------------------------------ #
    def begin(self) -> None:
        self._ensure_open()
        self.transaction_manager.begin()

    def commit(self) -> None:
        self._ensure_open()
        if not self.transaction_manager.is_active:
            raise TransactionError("No active transaction to commit.")
        try:
            self._flush()
            self.transaction_manager.commit()
        except Exception:
            self.logger.warning("Commit failed; rolling back and detaching all entities")
            self._abort()
            raise
        self.logger.debug("Committed; %d entities remain managed", len(self.identity_map))
        self.hooks.fire("after_commit", None, session=self)

    def rollback(self) -> None:
        self._ensure_open()
        if not self.transaction_manager.is_active:
            raise TransactionError("No active transaction to roll back.")
        self._abort()

    def _abort(self) -> None:
        if self.transaction_manager.is_active:
            try:
                self.transaction_manager.rollback()
            except AdapterError:
                self.logger.exception("Rollback failed")
        self._detach_all()
        for generator in self._generators.values():
            generator.reset()
        self.hooks.fire("after_rollback", None, session=self)

    def close(self) -> None:
        if self._closed:
            return
        try:
            if self.transaction_manager.is_active:
                self._abort()
        finally:
            self._detach_all()
            self._closed = True
            self.adapter.close()
            self.logger.debug("Session closed")

    @contextmanager
    def transaction(self) -> Iterator["Session"]:
        """
        Run a block in its own transaction: commit on success, roll back on error.
        """
        self.begin()
        try:
            yield self
        except Exception:
            if self.transaction_manager.is_active:
                self.rollback()
            raise
        else:
            self.commit()

    # ------------------------------------------------------------------ #
    # Entity state
    # ------------------------------------------------------------------ #
    def state_of(self, instance: Model) -> EntityState:
        if self.unit_of_work.is_deleted(instance):
            return EntityState.REMOVED
        if self.unit_of_work.is_new(instance) or instance in self.identity_map:
            return EntityState.MANAGED
        if getattr(instance, "_persisted", False):
            return EntityState.DETACHED
        return EntityState.TRANSIENT

    def contains(self, instance: Model) -> bool:
        return not self._closed and self.state_of(instance) is EntityState.MANAGED

    def _is_attached(self, instance: Model) -> bool:
        return self.unit_of_work.is_new(instance) or instance in self.identity_map

    def _managed_entities(self) -> List[Model]:
        seen: Dict[int, Model] = {}
        for instance in list(self.identity_map.values()) + list(self.unit_of_work.new.values()):
            if not self.unit_of_work.is_deleted(instance):
                seen.setdefault(id(instance), instance)
        return list(seen.values())

    # ------------------------------------------------------------------ #
    # persist
    # ------------------------------------------------------------------ #
    def persist(self, instance: Model) -> None:
        """
        Make a transient entity managed and schedule its INSERT; cascades PERSIST.
        """
        self._ensure_open()
        self._persist(instance, set())

    def _persist(self, instance: Model, visited: set, *, on_flush: bool = False) -> None:
        if id(instance) in visited:
            return
        visited.add(id(instance))

        state = self.state_of(instance)
        if on_flush and state in (EntityState.DETACHED, EntityState.REMOVED):
            return
        if state is EntityState.DETACHED:
            raise EntityStateError(
                f"Detached {type(instance).__name__} with id {instance.pk!r} passed to persist; use merge()"
            )
        if state is EntityState.REMOVED:
            self.unit_of_work.forget(instance)
        elif state is EntityState.TRANSIENT:
            self.hooks.fire("pre_persist", instance, session=self)
            self._assign_generated_key(instance)
            if instance.pk is not None:
                self.identity_map.register(instance)
            self.unit_of_work.register_new(instance)
            self.logger.debug("Scheduled insert of %s", type(instance).__name__)

        self.cascades.cascade(
            CascadeType.PERSIST,
            instance,
            lambda target: self._persist(target, visited, on_flush=on_flush),
        )

    def _assign_generated_key(self, instance: Model) -> None:
        pk_field = instance._meta.primary_key
        if instance.pk is not None or not isinstance(pk_field, AutoField):
            return
        if pk_field.strategy is not GenerationType.TABLE:
            return
        generator = self._generators.get(pk_field.generator)
        if generator is None:
            generator = TableGenerator(pk_field.generator, pk_field.allocation_size)
            self._generators[pk_field.generator] = generator
        instance._field_values[pk_field.require_name()] = generator.next_id(self)

    # ------------------------------------------------------------------ #
    # find / materialization / lazy loading
    # ------------------------------------------------------------------ #
    def find(self, model: Type[TModel], pk: Any) -> Optional[TModel]:
        """
        Managed instance for ``pk``, loading it if needed; ``None`` when the row
        does not exist or the entity is scheduled for removal.
        """
        self._ensure_open()
        if pk is None:
            raise ValueError("find() requires a primary key value.")
        pk = model._meta.primary_key.to_python(pk)
        existing = self.identity_map.lookup(model, pk)
        if existing is not None:
            return None if self.unit_of_work.is_deleted(existing) else existing
        values = self.persister.load_row(model, pk)
        if values is None:
            return None
        return self.materialize(model, values)

    def materialize(self, model: Type[TModel], values: Dict[str, Any]) -> TModel:
        """
        Turn a row into a managed entity, reusing the managed instance when the
        row is already known to this session.
        """
        pk_field = model._meta.primary_key
        pk = pk_field.from_db(values[pk_field.require_name()])
        existing = self.identity_map.lookup(model, pk)
        if existing is not None:
            return existing

        instance = model._from_db(values)
        eager: List[Callable[[], Any]] = []
        for field in model._meta.many_to_one():
            ref = self._install_reference(instance, field)
            if ref is not None and not ref.is_initialized and field.fetch is FetchType.EAGER:
                eager.append(ref.get)
        for name, relation in model._meta.collections.items():
            holder = PersistentList.unloaded(instance, name, self._collection_loader(instance, relation))
            instance._related_cache[name] = holder
            if relation.fetch is FetchType.EAGER:
                eager.append(holder.__len__)

        self.identity_map.register(instance)
        self.change_tracker.snapshot(instance)
        for load in eager:
            load()
        self.hooks.fire("post_load", instance, session=self)
        return instance

    def _install_reference(self, instance: Model, field: ManyToOne) -> Optional[LazyReference]:
        name = field.require_name()
        fk = instance._field_values.get(name)
        if fk is None:
            instance._related_cache.pop(name, None)
            return None
        target = self.identity_map.lookup(field.remote_model, fk)
        if target is not None:
            ref = LazyReference.loaded(target)
        else:
            ref = LazyReference.unloaded(fk, self._reference_loader(instance, field, fk))
        instance._related_cache[name] = ref
        return ref

    def _check_lazy_access(self, owner: Model, name: str) -> None:
        label = f"{type(owner).__name__}.{name}"
        if self._closed:
            raise LazyInitializationError(f"failed to lazily initialize {label}: session is closed")
        if not self._is_attached(owner):
            raise LazyInitializationError(
                f"failed to lazily initialize {label}: owning entity is no longer managed"
            )

    def _collection_loader(self, owner: Model, relation: OneToMany) -> Callable[[], List[Model]]:
        def load() -> List[Model]:
            self._check_lazy_access(owner, relation.require_name())
            self.logger.debug("Lazy loading %s.%s", type(owner).__name__, relation.name)
            self._lazy_depth += 1
            try:
                rows = self.persister.load_by(
                    relation.remote_model,
                    relation.mapped_field(),
                    owner.pk,
                    order_by=relation.order_by,
                )
                items = [self.materialize(relation.remote_model, row) for row in rows]
            finally:
                self._lazy_depth -= 1
            return [item for item in items if not self.unit_of_work.is_deleted(item)]

        return load

    def _reference_loader(self, owner: Model, field: ManyToOne, pk: Any) -> Callable[[], Optional[Model]]:
        def load() -> Optional[Model]:
            self._check_lazy_access(owner, field.require_name())
            self.logger.debug("Lazy loading %s.%s", type(owner).__name__, field.name)
            self._lazy_depth += 1
            try:
                return self.find(field.remote_model, pk)
            finally:
                self._lazy_depth -= 1

        return load

    # ------------------------------------------------------------------ #
    # merge
    # ------------------------------------------------------------------ #
    def merge(self, instance: TModel) -> TModel:
        """
        Copy the state of ``instance`` onto the managed entity with the same
        identity and return that managed entity. The argument itself never
        becomes managed. Cascades MERGE.
        """
        self._ensure_open()
        state = self.state_of(instance)
        if state is EntityState.MANAGED and self.change_tracker.is_dirty(instance):
            self._record_conflict(instance, "merged while it has unflushed changes")
        return self._merge(instance, {})

    def _merge(self, source: Model, copies: Dict[int, Model]) -> Model:
        if id(source) in copies:
            return copies[id(source)]

        state = self.state_of(source)
        if state is EntityState.REMOVED:
            raise EntityStateError(f"Removed {type(source).__name__} passed to merge")
        if state is EntityState.MANAGED:
            copies[id(source)] = source
            self.cascades.cascade(CascadeType.MERGE, source, lambda target: self._merge(target, copies))
            return source

        model = type(source)
        managed: Optional[Model] = None
        if state is EntityState.DETACHED:
            managed = self.find(model, source.pk)
            if managed is None and model._meta.version_field is not None:
                self._record_conflict(source, "merged after its row was deleted")
            if managed is not None:
                self._check_merge_target(source, managed)

        if managed is None:
            managed = model.__new__(model)
            managed._field_values = {}
            managed._related_cache = {}
            managed._persisted = False
            copies[id(source)] = managed
            self._copy_state(source, managed, copies, keep_pk=state is EntityState.TRANSIENT)
            self._persist(managed, set())
        else:
            copies[id(source)] = managed
            self._copy_state(source, managed, copies, keep_pk=True)
        return managed

    def _check_merge_target(self, source: Model, managed: Model) -> None:
        if self.change_tracker.is_dirty(managed):
            self._record_conflict(managed, "merged onto a managed instance with unflushed changes")
            return
        version_field = managed._meta.version_field
        if version_field is not None:
            name = version_field.require_name()
            if source._field_values.get(name) != managed._field_values.get(name):
                self._record_conflict(managed, "merged from a stale version")

    def _record_conflict(self, instance: Model, reason: str) -> None:
        self.logger.warning("Merge conflict on %s id=%r: %s", type(instance).__name__, instance.pk, reason)
        self.unit_of_work.record_conflict(
            ConcurrentModificationError(
                type(instance),
                instance.pk,
                f"{type(instance).__name__} with id {instance.pk!r} {reason}",
            )
        )

    def _copy_state(self, source: Model, target: Model, copies: Dict[int, Model], *, keep_pk: bool) -> None:
        meta = type(source)._meta
        for field in meta.get_fields():
            name = field.require_name()
            if field.primary_key:
                if keep_pk and target.pk is None:
                    target._field_values[name] = source._field_values.get(name)
                continue
            if field is meta.version_field and target._persisted:
                continue
            if isinstance(field, ManyToOne):
                self._copy_reference(source, target, field, copies)
                continue
            target._field_values[name] = source._field_values.get(name)

        for name in meta.collections:
            holder = source._related_cache.get(name)
            if holder is None or not holder.is_initialized:
                continue
            edge = self.cascades.registry.edge(type(source), name)
            if edge.cascades(CascadeType.MERGE):
                items = [self._merge(item, copies) for item in holder.peek()]
            else:
                items = [self._managed_counterpart(item, copies) for item in holder.peek()]
            getattr(target, name).replace(items)

    def _copy_reference(self, source: Model, target: Model, field: ManyToOne, copies: Dict[int, Model]) -> None:
        name = field.require_name()
        ref = source._related_cache.get(name)
        if ref is None:
            target._related_cache.pop(name, None)
            target._field_values[name] = source._field_values.get(name)
            return
        if not ref.is_initialized:
            target._field_values[name] = ref.pk
            self._install_reference(target, field)
            return
        value = ref.peek()
        if value is None:
            target._related_cache.pop(name, None)
            target._field_values[name] = None
            return
        if field.association().cascades(CascadeType.MERGE):
            value = self._merge(value, copies)
        else:
            value = self._managed_counterpart(value, copies)
        target._related_cache[name] = LazyReference.loaded(value)
        target._field_values[name] = value.pk

    def _managed_counterpart(self, instance: Model, copies: Dict[int, Model]) -> Model:
        if id(instance) in copies:
            return copies[id(instance)]
        if self.state_of(instance) is EntityState.DETACHED:
            managed = self.find(type(instance), instance.pk)
            if managed is not None:
                return managed
        return instance

    # ------------------------------------------------------------------ #
    # detach / clear
    # ------------------------------------------------------------------ #
    def detach(self, instance: Model) -> None:
        """
        Evict an entity (and its DETACH-cascaded, loaded associations) from the context.
        """
        self._ensure_open()
        self._detach(instance, set())

    def _detach(self, instance: Model, visited: set) -> None:
        if id(instance) in visited:
            return
        visited.add(id(instance))
        if self.state_of(instance) not in (EntityState.MANAGED, EntityState.REMOVED):
            return
        self.identity_map.remove(instance)
        self.change_tracker.forget(instance)
        self.unit_of_work.forget(instance)
        self.cascades.cascade(CascadeType.DETACH, instance, lambda target: self._detach(target, visited))

    def clear(self) -> None:
        """
        Detach every entity and drop unflushed changes; the transaction stays open.
        """
        self._ensure_open()
        self._detach_all()

    def _detach_all(self) -> None:
        detached = len(self.identity_map) + len(self.unit_of_work.new)
        self.identity_map.clear()
        self.change_tracker.clear()
        self.unit_of_work.clear()
        if detached:
            self.logger.debug("Detached %d entities", detached)

    # ------------------------------------------------------------------ #
    # remove / refresh
    # ------------------------------------------------------------------ #
    def remove(self, instance: Model) -> None:
        """
        Schedule the DELETE of a managed entity; cascades REMOVE (including
        orphan-removal collections) after loading them.
        """
        self._ensure_open()
        self._remove(instance, set())

    def _remove(self, instance: Model, visited: set) -> None:
        if id(instance) in visited:
            return
        visited.add(id(instance))
        state = self.state_of(instance)
        if state is EntityState.DETACHED:
            raise EntityStateError(
                f"Detached {type(instance).__name__} with id {instance.pk!r} passed to remove"
            )
        if state is not EntityState.MANAGED:
            return

        self.hooks.fire("pre_remove", instance, session=self)
        self.cascades.cascade(
            CascadeType.REMOVE,
            instance,
            lambda target: self._remove(target, visited),
            force=True,
        )
        if not self.unit_of_work.register_deleted(instance):
            self.identity_map.remove(instance)
            self.change_tracker.forget(instance)
        self.logger.debug("Scheduled delete of %s id=%r", type(instance).__name__, instance.pk)

    def refresh(self, instance: Model) -> None:
        """
        Overwrite a managed entity with its database state; cascades REFRESH.
        """
        self._ensure_open()
        self._refresh(instance, set())

    def _refresh(self, instance: Model, visited: set) -> None:
        if id(instance) in visited:
            return
        visited.add(id(instance))
        if self.state_of(instance) is not EntityState.MANAGED or instance.pk is None:
            raise EntityStateError(f"{type(instance).__name__} is not managed by this session")
        model = type(instance)
        self.cascades.cascade(CascadeType.REFRESH, instance, lambda target: self._refresh(target, visited))
        values = self.persister.load_row(model, instance.pk)
        if values is None:
            raise EntityStateError(f"{model.__name__} with id {instance.pk!r} no longer exists")
        for name, value in values.items():
            instance._field_values[name] = model._meta.get_field(name).from_db(value)
        for field in model._meta.many_to_one():
            self._install_reference(instance, field)
        for name, relation in model._meta.collections.items():
            holder = instance._related_cache.get(name)
            if isinstance(holder, PersistentList):
                holder.reset(self._collection_loader(instance, relation))
        self.change_tracker.snapshot(instance)

    # ------------------------------------------------------------------ #
    # flush
    # ------------------------------------------------------------------ #
    def has_pending_changes(self) -> bool:
        if self.unit_of_work.has_pending():
            return True
        return any(self.change_tracker.is_dirty(i) for i in self.identity_map.values())

    def flush(self) -> None:
        """
        Write every pending change: inserts in dependency order, updates of
        dirty entities, then deletes in reverse dependency order.

        A failure rolls the transaction back and detaches every entity, so no
        partially written flush can be committed afterwards.
        """
        self._ensure_open()
        if not self.transaction_manager.is_active:
            raise TransactionRequiredError("flush() requires an active transaction")
        try:
            self._flush()
        except Exception:
            self.logger.warning("Flush failed; rolling back and detaching all entities")
            self._abort()
            raise

    def _flush(self) -> None:
        if self.unit_of_work.conflicts:
            raise self.unit_of_work.conflicts[0]

        self._remove_orphans()
        visited: set = set()
        for instance in self._managed_entities():
            self._persist(instance, visited, on_flush=True)
        for instance in self._managed_entities():
            self._check_transient_references(instance)

        inserts = self.unit_of_work.ordered_inserts()
        deletes = self.unit_of_work.ordered_deletes()

        for instance in inserts:
            instance.full_clean()
            self.persister.insert(instance)
            instance._persisted = True
            self.identity_map.register(instance)
            self.change_tracker.snapshot(instance)
            self.hooks.fire("post_persist", instance, session=self)

        # after the inserts so references to new rows carry their keys
        updates = self.unit_of_work.collect_dirty(self.identity_map.values(), self.change_tracker)
        updated = 0
        for instance in updates:
            self.hooks.fire("pre_update", instance, session=self)
            changes = self.change_tracker.diff(instance)
            if not changes:
                continue
            instance.full_clean()
            self.persister.update(instance, changes)
            self.change_tracker.snapshot(instance)
            self.hooks.fire("post_update", instance, session=self)
            updated += 1

        for instance in deletes:
            self.persister.delete(instance)
            self.identity_map.remove(instance)
            self.change_tracker.forget(instance)
            instance._persisted = False
            self.hooks.fire("post_remove", instance, session=self)

        self.unit_of_work.clear()
        for instance in self.identity_map.values():
            for holder in instance._related_cache.values():
                if isinstance(holder, PersistentList):
                    holder.mark_clean()
        if inserts or updated or deletes:
            self.logger.info(
                "Flushed %d inserts, %d updates, %d deletes", len(inserts), updated, len(deletes)
            )

    def _remove_orphans(self) -> None:
        visited: set = set()
        for instance in self._managed_entities():
            for name in instance._meta.collections:
                holder = instance._related_cache.get(name)
                if not isinstance(holder, PersistentList) or not holder.association.orphan_removal:
                    continue
                for orphan in holder.removed():
                    if self.state_of(orphan) is EntityState.MANAGED:
                        self.logger.debug(
                            "Removing orphan %s id=%r from %s.%s",
                            type(orphan).__name__,
                            orphan.pk,
                            type(instance).__name__,
                            name,
                        )
                        self._remove(orphan, visited)

    def _check_transient_references(self, instance: Model) -> None:
        for edge in self.cascades.registry.edges(type(instance)):
            for target in self.cascades.targets(instance, edge):
                if self.state_of(target) is EntityState.TRANSIENT:
                    raise TransientReferenceError(
                        f"{type(instance).__name__}.{edge.name} references an unsaved "
                        f"{type(target).__name__}; persist it first or cascade PERSIST"
                    )

    # ------------------------------------------------------------------ #
    # Queries and raw execution
    # ------------------------------------------------------------------ #
    def query(self, model: Type[TModel]) -> "QuerySet[TModel]":
        from ..query import QuerySet

        self._ensure_open()
        return QuerySet(model, session=self)

    def auto_flush(self) -> None:
        """
        Flush before a query when running in AUTO mode inside a transaction.
        """
        if (
            self.flush_mode is FlushMode.AUTO
            and self.transaction_manager.is_active
            and self.has_pending_changes()
        ):
            self.flush()

    def execute(self, sql: str, params: Iterable[Any] | None = None):
        self._ensure_open()
        param_list = list(params or [])
        with time_call(
            "session.execute",
            self.logger,
            sql=sql,
            params=redact_params(param_list),
            threshold_ms=self.slow_query_ms,
        ) as timer:
            cursor = self.adapter.execute(sql, param_list)
        self.performance.record(sql, param_list, timer.elapsed_ms, lazy=self._lazy_depth > 0)
        return cursor

    def query_stats(self) -> List[dict[str, object]]:
        return self.performance.summary()

    def reset_query_stats(self) -> None:
        self.performance.reset()
