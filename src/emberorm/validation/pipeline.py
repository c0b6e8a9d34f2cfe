"""
Validation pipeline invoked by the session at flush time.
"""

from __future__ import annotations

from typing import Any, Dict, List

from ..core.fields import AutoField, Field, VersionField
from ..core.model import Model
from ..core.relations import ManyToOne
from .errors import ValidationError


def validate_instance(instance: Model) -> None:
    errors: Dict[str, List[str]] = {}

    for field in instance._meta.get_fields():
        field_name = field.require_name()
        try:
            _validate_field(field, _current_value(instance, field), instance)
        except ValidationError as exc:
            _merge_errors(errors, exc.errors)
        except ValueError as exc:
            _add_error(errors, field_name, str(exc))

    try:
        instance.clean()
    except ValidationError as exc:
        _merge_errors(errors, exc.errors)

    if errors:
        raise ValidationError(errors)


def _current_value(instance: Model, field: Field) -> Any:
    if isinstance(field, ManyToOne):
        # a reference to a not yet inserted entity counts as present
        ref = instance._related_cache.get(field.require_name())
        if ref is not None:
            return ref
        return instance._field_values.get(field.require_name())
    return instance._field_values.get(field.require_name())


def _validate_field(field: Field, value: Any, instance: Model) -> None:
    if value is None:
        if isinstance(field, (AutoField, VersionField)):
            return
        if not field.nullable:
            raise ValidationError({field.require_name(): ["This field cannot be null."]})
        return
    if isinstance(field, ManyToOne):
        return
    try:
        field.run_validators(value)
    except ValueError as exc:
        raise ValidationError({field.require_name(): [str(exc)]}) from exc


def _add_error(errors: Dict[str, List[str]], field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)


def _merge_errors(target: Dict[str, List[str]], source: Dict[str, List[str]]) -> None:
    for field, messages in source.items():
        target.setdefault(field, []).extend(messages)
