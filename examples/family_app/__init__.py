"""
Parent/child sample application walking through the persistence context.
"""

from .demo import (
    bootstrap_factory,
    bulk_insert,
    cascade_detach_merge,
    cascade_persist,
    cascade_remove,
    lazy_collection_state,
    merge_managed_entity,
    orphan_removal,
    repeatable_reads,
    run_demo,
    update_without_save,
)
from .models import Child, Parent

__all__ = [
    "Child",
    "Parent",
    "bootstrap_factory",
    "bulk_insert",
    "cascade_detach_merge",
    "cascade_persist",
    "cascade_remove",
    "lazy_collection_state",
    "merge_managed_entity",
    "orphan_removal",
    "repeatable_reads",
    "run_demo",
    "update_without_save",
]
