"""
Boolean filter expressions.
"""

from __future__ import annotations

from typing import Any, List, Tuple, Union

AND = "AND"
OR = "OR"

Lookup = Tuple[str, Any]


class Q:
    """
    Composable filter: keyword lookups joined with AND, combinable with
    ``&``, ``|`` and negated with ``~``.

    >>> Q(name="Hans") | ~Q(name__contains="x")
    """

    def __init__(self, *children: "Union[Q, Lookup]", **lookups: Any) -> None:
        self.children: List[Union["Q", Lookup]] = list(children) + list(lookups.items())
        self.connector = AND
        self.negated = False

    def __or__(self, other: "Q") -> "Q":
        return self._combine(other, OR)

    def __and__(self, other: "Q") -> "Q":
        return self._combine(other, AND)

    def __invert__(self) -> "Q":
        clone = self._clone()
        clone.negated = not self.negated
        return clone

    def __repr__(self) -> str:
        prefix = "NOT " if self.negated else ""
        return f"<Q {prefix}{self.connector} {self.children!r}>"

    def _clone(self) -> "Q":
        clone = Q(*self.children)
        clone.connector = self.connector
        clone.negated = self.negated
        return clone

    def _combine(self, other: "Q", connector: str) -> "Q":
        if not isinstance(other, Q):
            return NotImplemented
        if other.is_empty():
            return self._clone()
        if self.is_empty():
            return other._clone()
        combined = Q(self._clone(), other._clone())
        combined.connector = connector
        return combined

    def is_empty(self) -> bool:
        return not self.children
