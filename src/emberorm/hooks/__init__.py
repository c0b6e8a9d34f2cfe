"""
Lifecycle callbacks for EmberORM entities.
"""

from .dispatcher import LIFECYCLE_EVENTS, HookDispatcher, HookEvent, hooks

__all__ = ["LIFECYCLE_EVENTS", "HookDispatcher", "HookEvent", "hooks"]
