"""
Built-in field validators, in the spirit of bean-validation constraints.
"""

from __future__ import annotations

import re
from typing import Any


class Validator:
    """
    Callable constraint; ``None`` values are left to the field's nullability.
    """

    default_message = "Invalid value."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message

    def __call__(self, value: Any) -> None:
        if value is None:
            return
        if not self.is_valid(value):
            raise ValueError(self.message)

    def is_valid(self, value: Any) -> bool:
        raise NotImplementedError


class MinValueValidator(Validator):
    def __init__(self, minimum: float, message: str | None = None) -> None:
        super().__init__(message or f"Ensure value is greater than or equal to {minimum}.")
        self.minimum = minimum

    def is_valid(self, value: Any) -> bool:
        return value >= self.minimum


class MaxValueValidator(Validator):
    def __init__(self, maximum: float, message: str | None = None) -> None:
        super().__init__(message or f"Ensure value is less than or equal to {maximum}.")
        self.maximum = maximum

    def is_valid(self, value: Any) -> bool:
        return value <= self.maximum


class NotBlankValidator(Validator):
    default_message = "This field cannot be blank."

    def is_valid(self, value: Any) -> bool:
        return isinstance(value, str) and bool(value.strip())


class RegexValidator(Validator):
    default_message = "Value does not match required pattern."

    def __init__(self, pattern: str, message: str | None = None) -> None:
        super().__init__(message)
        self.pattern = re.compile(pattern)

    def is_valid(self, value: Any) -> bool:
        return isinstance(value, str) and self.pattern.match(value) is not None
