"""
Utility helpers shared across EmberORM packages.
"""

from .logging import configure_logging, get_logger, redact_params, time_call
from .naming import camel_to_snake, foreign_key_column

__all__ = [
    "camel_to_snake",
    "configure_logging",
    "foreign_key_column",
    "get_logger",
    "redact_params",
    "time_call",
]
