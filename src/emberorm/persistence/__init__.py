"""
Persistence layer components: sessions, unit of work, identity map.
"""

from .cascade import CascadeEngine
from .change_tracker import ChangeTracker
from .collections import LazyReference, PersistentList, is_initialized
from .errors import (
    ConcurrentModificationError,
    DuplicateIdentityError,
    EntityStateError,
    LazyInitializationError,
    PersistenceError,
    TransactionRequiredError,
    TransientReferenceError,
)
from .factory import SessionFactory
from .generators import TableGenerator
from .identity_map import IdentityMap
from .session import EntityState, FlushMode, Session
from .transaction import TransactionError, TransactionManager, TransactionStatus
from .unit_of_work import UnitOfWork

__all__ = [
    "CascadeEngine",
    "ChangeTracker",
    "ConcurrentModificationError",
    "DuplicateIdentityError",
    "EntityState",
    "EntityStateError",
    "FlushMode",
    "IdentityMap",
    "LazyInitializationError",
    "LazyReference",
    "PersistenceError",
    "PersistentList",
    "Session",
    "SessionFactory",
    "TableGenerator",
    "TransactionError",
    "TransactionManager",
    "TransactionRequiredError",
    "TransactionStatus",
    "TransientReferenceError",
    "UnitOfWork",
    "is_initialized",
]
