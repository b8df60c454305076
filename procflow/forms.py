"""Form step helpers: effective fields, value coercion and submission checks."""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel

from .contracts import FieldType, FormField, ProcessDefinition, ProcessInstance

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off", ""}


class FieldIssue(BaseModel):
    """A submitted value that does not satisfy its field."""

    field: str
    message: str


def effective_fields(
    instance: ProcessInstance, definition: ProcessDefinition
) -> Tuple[FormField, ...]:
    """Instance override fields when present, else the definition's own fields."""
    if instance.overrides is not None and instance.overrides.fields is not None:
        return instance.overrides.fields
    return definition.fields


def coerce_value(form_field: FormField, raw: str) -> Any:
    """Convert a textual input to the field's value type.

    Raises:
        ValueError: If ``raw`` cannot be read as the field's type.
    """
    if form_field.type == FieldType.NUMBER:
        try:
            return int(raw)
        except ValueError:
            return float(raw)
    if form_field.type == FieldType.CHECKBOX:
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"{form_field.name}: {raw!r} is not a boolean")
    if form_field.type == FieldType.DATE:
        return date.fromisoformat(raw.strip()).isoformat()
    return raw


def parse_assignments(
    assignments: Sequence[str], fields: Sequence[FormField] = ()
) -> Dict[str, Any]:
    """Turn ``name=value`` strings into a data mapping, typed by ``fields``."""
    by_name = {f.name: f for f in fields}
    data: Dict[str, Any] = {}
    for item in assignments:
        if "=" not in item:
            raise ValueError(f"Expected name=value, got {item!r}")
        name, raw = item.split("=", 1)
        name = name.strip()
        form_field = by_name.get(name)
        data[name] = coerce_value(form_field, raw) if form_field else raw
    return data


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def check_submission(
    fields: Sequence[FormField], data: Mapping[str, Any]
) -> List[FieldIssue]:
    """Required and pattern checks for a form submission."""
    issues: List[FieldIssue] = []
    for form_field in fields:
        value: Optional[Any] = data.get(form_field.name)
        if _is_blank(value):
            if form_field.required:
                label = form_field.label or form_field.name
                issues.append(FieldIssue(field=form_field.name, message=f"{label} is required"))
            continue
        if form_field.validation and not re.search(form_field.validation, str(value)):
            issues.append(
                FieldIssue(
                    field=form_field.name,
                    message=f"{value!r} does not match {form_field.validation!r}",
                )
            )
    return issues
