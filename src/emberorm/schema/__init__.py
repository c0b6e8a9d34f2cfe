"""
DDL generation for mapped models.
"""

from .builder import SchemaBuilder

__all__ = ["SchemaBuilder"]
