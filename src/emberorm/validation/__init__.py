"""
Validation run by the session before entities are inserted or updated.
"""

from .errors import ValidationError
from .pipeline import validate_instance
from .validators import (
    MaxValueValidator,
    MinValueValidator,
    NotBlankValidator,
    RegexValidator,
    Validator,
)

__all__ = [
    "ValidationError",
    "validate_instance",
    "Validator",
    "MinValueValidator",
    "MaxValueValidator",
    "NotBlankValidator",
    "RegexValidator",
]
