"""
Validation error raised for entities that violate field constraints.
"""

from __future__ import annotations

from typing import Dict, List, Mapping

NON_FIELD_ERRORS = "__all__"


class ValidationError(Exception):
    """
    Field-to-messages mapping collected while validating one entity.
    """

    def __init__(self, errors: Mapping[str, List[str]]) -> None:
        self.errors: Dict[str, List[str]] = {key: list(messages) for key, messages in errors.items()}
        super().__init__(
            "; ".join(
                f"{'non-field' if name == NON_FIELD_ERRORS else name}: {'; '.join(messages)}"
                for name, messages in self.errors.items()
            )
        )

    @property
    def fields(self) -> List[str]:
        return [name for name in self.errors if name != NON_FIELD_ERRORS]
