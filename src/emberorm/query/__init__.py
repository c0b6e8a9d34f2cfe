"""
Query construction APIs for EmberORM.
"""

from .compiler import SQLCompiler
from .expressions import Q
from .queryset import QuerySet

__all__ = ["Q", "QuerySet", "SQLCompiler"]
