"""
Walk-through of the persistence context using the family models.

Each step opens its own sessions from a shared :class:`SessionFactory`, the
way an application would use one persistence context per unit of work.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict, List

from emberorm.persistence import (
    ConcurrentModificationError,
    SessionFactory,
    is_initialized,
)
from emberorm.utils import get_logger

from .models import Child, Parent

logger = get_logger("examples.family_app")


def bootstrap_factory(url: str) -> SessionFactory:
    """
    Create a factory for ``url`` and make sure the family schema exists.
    """
    factory = SessionFactory(url, models=[Parent, Child])
    factory.create_schema()
    return factory


def cascade_persist(factory: SessionFactory, name: str = "Hans") -> int:
    """
    Persist a parent with one child through the parent alone.
    """
    with factory.session() as session:
        parent = Parent(name=name)
        parent.children.append(Child(parent=parent))
        session.persist(parent)
    return parent.id


def update_without_save(factory: SessionFactory, parent_id: int, new_name: str = "Peter") -> None:
    """
    Rename a managed parent and add a child; both are written at commit
    without any explicit save call.
    """
    with factory.session() as session:
        parent = session.find(Parent, parent_id)
        parent.name = new_name
        parent.children.append(Child(parent=parent))


def cascade_detach_merge(factory: SessionFactory, parent_id: int, new_name: str = "Ueli") -> Dict[str, Any]:
    """
    Detach a parent with its loaded children, edit the copies and merge them back.
    """
    with factory.session() as session:
        detached = session.find(Parent, parent_id)
        children = list(detached.children)
        session.detach(detached)
        detached_state = {
            "parent_managed": session.contains(detached),
            "children_managed": [session.contains(child) for child in children],
        }

        detached.name = new_name
        for child in detached.children:
            child.name = "new name"

        merged = session.merge(detached)
        return {
            **detached_state,
            "merged_is_copy": merged is not detached,
            "merged_managed": session.contains(merged),
            "merged_name": merged.name,
            "merged_child_names": [child.name for child in merged.children],
        }


def repeatable_reads(factory: SessionFactory, parent_id: int) -> Dict[str, Any]:
    with factory.session() as session:
        first = session.find(Parent, parent_id)
        second = session.find(Parent, parent_id)
        children = session.query(Child).all()
        result = {
            "same_instance": first is second,
            "children_in_collection": all(child in first.children for child in children),
        }
    with factory.session() as session:
        other = session.find(Parent, parent_id)
        result["equal_across_sessions"] = other == first
        result["identical_across_sessions"] = other is first
    return result


def orphan_removal(factory: SessionFactory, parent_id: int, index: int = 1) -> int:
    """
    Drop one child from the collection; it is deleted at commit. Returns the
    collection size seen by a fresh session.
    """
    with factory.session() as session:
        parent = session.find(Parent, parent_id)
        parent.children.pop(index)
    with factory.session() as session:
        return len(session.find(Parent, parent_id).children)


def cascade_remove(factory: SessionFactory, parent_id: int) -> int:
    """
    Remove the parent; its children go with it. Returns the remaining child rows.
    """
    with factory.session() as session:
        session.remove(session.find(Parent, parent_id))
    with factory.session() as session:
        return session.query(Child).count()


def merge_managed_entity(factory: SessionFactory, parent_id: int) -> bool:
    """
    Merge a managed parent whose collection was changed in place. The commit
    is rejected and rolled back; returns True when that happened.
    """
    session = factory.open_session()
    try:
        session.begin()
        parent = session.find(Parent, parent_id)
        parent.children.append(Child(parent=parent))
        for child in parent.children:
            logger.debug("Loaded %r", child)
        session.merge(parent)
        try:
            session.commit()
        except ConcurrentModificationError:
            return True
        return False
    finally:
        session.close()


def bulk_insert(factory: SessionFactory, count: int, batch_size: int = 100) -> int:
    """
    Insert ``count`` parents, flushing and clearing every ``batch_size`` rows so
    the persistence context never grows beyond one batch. Returns the largest
    number of entities managed at once.
    """
    peak = 0
    with factory.session() as session:
        for i in range(count):
            session.persist(Parent(name=f"bulk-{i}"))
            if (i + 1) % batch_size == 0:
                session.flush()
                peak = max(peak, len(session.identity_map))
                session.clear()
        peak = max(peak, len(session.identity_map))
    return peak


def lazy_collection_state(factory: SessionFactory, parent_id: int) -> List[bool]:
    """
    Initialization flags of a parent's children before and after ``len``.
    """
    with factory.session() as session:
        children = session.find(Parent, parent_id).children
        states = [is_initialized(children)]
        len(children)
        states.append(is_initialized(children))
    return states


def run_demo() -> Dict[str, Any]:
    """
    Execute the full scenario against a temporary SQLite database.
    """
    with tempfile.TemporaryDirectory() as tmp:
        factory = bootstrap_factory(f"sqlite:///{Path(tmp) / 'family.db'}")
        parent_id = cascade_persist(factory)
        update_without_save(factory, parent_id)
        merged = cascade_detach_merge(factory, parent_id)
        reads = repeatable_reads(factory, parent_id)
        remaining = orphan_removal(factory, parent_id)
        left_over = cascade_remove(factory, parent_id)
        rejected = merge_managed_entity(factory, cascade_persist(factory))
        factory.close()
    summary = {
        "merged": merged,
        "repeatable_reads": reads,
        "children_after_orphan_removal": remaining,
        "children_after_remove": left_over,
        "managed_merge_rejected": rejected,
    }
    logger.info("Family demo finished: %s", summary)
    return summary


if __name__ == "__main__":
    from emberorm.utils import configure_logging

    configure_logging()
    print(run_demo())
