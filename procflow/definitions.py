"""Definition store holding built-in and user-authored process templates."""

from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .constants import BASE_APPROVAL_ID, BASE_FORM_ID, BASE_REFERENCE_ID
from .contracts import (
    FormField,
    InstanceOverrides,
    ProcessDefinition,
    ProcessInstance,
    ProcessKind,
)
from .engine.validator import CompositionGraph
from .errors import ValidationIssue, ValidationReason

logger = logging.getLogger(__name__)

_CODE_PATTERN = re.compile(r"^[A-Za-z0-9]+$")

BASE_DEFINITIONS: Tuple[ProcessDefinition, ...] = (
    ProcessDefinition(
        id=BASE_FORM_ID,
        name="Form input",
        kind=ProcessKind.FORM,
        description="Shows an input form and collects data from the user",
        is_base=True,
    ),
    ProcessDefinition(
        id=BASE_APPROVAL_ID,
        name="Approval",
        kind=ProcessKind.APPROVAL,
        description="Reviews and approves information entered in earlier steps",
        is_base=True,
    ),
    ProcessDefinition(
        id=BASE_REFERENCE_ID,
        name="Reference",
        kind=ProcessKind.REFERENCE,
        description="Shows and edits information collected by the workflow",
        is_base=True,
    ),
)

_DERIVABLE_KINDS = (ProcessKind.FORM, ProcessKind.APPROVAL, ProcessKind.REFERENCE)


class AuthoringResult(BaseModel):
    """Outcome of an authoring operation."""

    model_config = ConfigDict(frozen=True)

    definition: Optional[ProcessDefinition] = None
    issue: Optional[ValidationIssue] = None

    @property
    def ok(self) -> bool:
        return self.issue is None


def _refused(reason: ValidationReason, message: str) -> AuthoringResult:
    logger.warning(f"Authoring refused ({reason.value}): {message}")
    return AuthoringResult(issue=ValidationIssue(reason=reason, message=message))


def _field_issue(fields: Iterable[FormField]) -> Optional[ValidationIssue]:
    seen = set()
    for f in fields:
        if f.name in seen:
            return ValidationIssue(
                reason=ValidationReason.DUPLICATE_FIELD,
                message=f"field name {f.name!r} is used twice",
            )
        seen.add(f.name)
        if f.validation:
            try:
                re.compile(f.validation)
            except re.error as exc:
                return ValidationIssue(
                    reason=ValidationReason.INVALID_PATTERN,
                    message=f"field {f.name!r}: {exc}",
                )
    return None


class DefinitionStore:
    """Copy-on-write table of process definitions.

    Every change publishes a fresh read-only mapping, so anything holding a
    previous :meth:`snapshot` (or a definition object) never sees it move.
    Base definitions are always present and cannot be edited or deleted;
    base entries passed to the constructor are replaced by the built-in set.
    """

    def __init__(self, definitions: Iterable[ProcessDefinition] = ()) -> None:
        entries: Dict[str, ProcessDefinition] = {d.id: d for d in BASE_DEFINITIONS}
        for definition in definitions:
            if definition.is_base:
                continue
            entries[definition.id] = definition
        self._entries: Mapping[str, ProcessDefinition] = MappingProxyType(entries)
        self._version = 0
        self._listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Read access
    def list_definitions(self) -> List[ProcessDefinition]:
        return list(self._entries.values())

    def get_definition(self, definition_id: str) -> Optional[ProcessDefinition]:
        return self._entries.get(definition_id)

    def snapshot(self) -> Mapping[str, ProcessDefinition]:
        """Read-only view of the table as of now; later edits never show up in it."""
        return self._entries

    @property
    def version(self) -> int:
        return self._version

    def custom_definitions(self) -> List[ProcessDefinition]:
        return [d for d in self._entries.values() if not d.is_base]

    def find_by_code(self, code: str) -> Optional[ProcessDefinition]:
        return next((d for d in self._entries.values() if d.code == code), None)

    def composites_ready_to_run(self) -> List[ProcessDefinition]:
        """Custom composites that have at least one child."""
        return [
            d
            for d in self._entries.values()
            if d.is_composite and not d.is_base and d.children
        ]

    def referencing(self, definition_id: str) -> List[ProcessDefinition]:
        """Definitions that list ``definition_id`` as a direct child."""
        return [
            d
            for d in self._entries.values()
            if any(c.definition_id == definition_id for c in d.children)
        ]

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Call ``listener`` after every published change."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Internal helpers
    def _publish(self, entries: Dict[str, ProcessDefinition]) -> None:
        self._entries = MappingProxyType(entries)
        self._version += 1
        for listener in list(self._listeners):
            listener()

    def _put(self, definition: ProcessDefinition) -> None:
        entries = dict(self._entries)
        entries[definition.id] = definition
        self._publish(entries)

    def _editable(
        self, definition_id: str
    ) -> Tuple[Optional[ProcessDefinition], Optional[AuthoringResult]]:
        existing = self._entries.get(definition_id)
        if existing is None:
            return None, _refused(
                ValidationReason.MISSING, f"definition {definition_id} not found"
            )
        if existing.is_base:
            return None, _refused(
                ValidationReason.IMMUTABLE_BASE,
                f"base definition {definition_id} cannot be changed",
            )
        return existing, None

    def _code_issue(self, code: Optional[str], own_id: str) -> Optional[AuthoringResult]:
        if not code:
            return None
        if not _CODE_PATTERN.match(code):
            return _refused(
                ValidationReason.INVALID_CODE, f"code {code!r} must be alphanumeric"
            )
        holder = self.find_by_code(code)
        if holder is not None and holder.id != own_id:
            return _refused(
                ValidationReason.DUPLICATE_CODE,
                f"code {code!r} is already used by {holder.id}",
            )
        return None

    # ------------------------------------------------------------------
    # Authoring operations
    def create_composite(
        self, name: str, description: str = "", code: Optional[str] = None
    ) -> AuthoringResult:
        """Create an empty user composite."""
        if not name.strip():
            return _refused(ValidationReason.EMPTY_NAME, "a name is required")
        definition = ProcessDefinition(
            name=name.strip(),
            kind=ProcessKind.COMPOSITE,
            description=description,
            code=code or None,
        )
        refusal = self._code_issue(definition.code, definition.id)
        if refusal is not None:
            return refusal
        self._put(definition)
        logger.info(f"Created composite {definition.id} ({definition.name})")
        return AuthoringResult(definition=definition)

    def derive(
        self, source_id: str, name: str, code: Optional[str] = None
    ) -> AuthoringResult:
        """Create an editable copy of a form, approval or reference definition."""
        source = self._entries.get(source_id)
        if source is None:
            return _refused(ValidationReason.MISSING, f"definition {source_id} not found")
        if source.kind not in _DERIVABLE_KINDS:
            return _refused(
                ValidationReason.NOT_DERIVABLE,
                f"{source.kind.value} definitions cannot be derived",
            )
        if not name.strip():
            return _refused(ValidationReason.EMPTY_NAME, "a name is required")
        definition = ProcessDefinition(
            name=name.strip(),
            kind=source.kind,
            description=source.description or "",
            fields=source.fields,
            base_definition_id=source.id,
            code=code or None,
        )
        refusal = self._code_issue(definition.code, definition.id)
        if refusal is not None:
            return refusal
        self._put(definition)
        logger.info(f"Derived {definition.id} ({definition.name}) from {source.id}")
        return AuthoringResult(definition=definition)

    def update_definition(self, definition: ProcessDefinition) -> AuthoringResult:
        """Replace a custom definition wholesale."""
        existing, refusal = self._editable(definition.id)
        if refusal is not None:
            return refusal
        if definition.is_base:
            return _refused(
                ValidationReason.IMMUTABLE_BASE, "custom definitions cannot become base"
            )
        if not definition.name.strip():
            return _refused(ValidationReason.EMPTY_NAME, "a name is required")
        refusal = self._code_issue(definition.code, definition.id)
        if refusal is not None:
            return refusal
        issue = _field_issue(definition.fields)
        if issue is not None:
            return _refused(issue.reason, issue.message)

        candidate = dict(self._entries)
        candidate[definition.id] = definition
        if CompositionGraph(candidate.values()).has_cycle_through(definition.id):
            return _refused(
                ValidationReason.CYCLIC,
                f"{definition.id} would contain itself",
            )
        self._publish(candidate)
        logger.info(f"Updated definition {definition.id}")
        return AuthoringResult(definition=definition)

    def delete_definition(self, definition_id: str) -> AuthoringResult:
        """Remove a custom definition; references to it are left dangling."""
        existing, refusal = self._editable(definition_id)
        if refusal is not None:
            return refusal
        users = self.referencing(definition_id)
        if users:
            logger.warning(
                f"Deleting {definition_id} leaves references in {[d.id for d in users]}"
            )
        entries = dict(self._entries)
        del entries[definition_id]
        self._publish(entries)
        logger.info(f"Deleted definition {definition_id}")
        return AuthoringResult(definition=existing)

    def clear_custom(self) -> None:
        """Drop every user-authored definition."""
        self._publish({d.id: d for d in self._entries.values() if d.is_base})
        logger.info("Cleared all custom definitions")

    # Form fields ------------------------------------------------------
    def _form(self, definition_id: str) -> Tuple[Optional[ProcessDefinition], Optional[AuthoringResult]]:
        existing, refusal = self._editable(definition_id)
        if refusal is not None:
            return None, refusal
        if existing.kind != ProcessKind.FORM:
            return None, _refused(
                ValidationReason.NOT_FORM, f"{definition_id} is not a form definition"
            )
        return existing, None

    def _set_fields(
        self, existing: ProcessDefinition, fields: Tuple[FormField, ...]
    ) -> AuthoringResult:
        issue = _field_issue(fields)
        if issue is not None:
            return _refused(issue.reason, issue.message)
        updated = existing.model_copy(update={"fields": fields})
        self._put(updated)
        return AuthoringResult(definition=updated)

    def add_field(self, definition_id: str, form_field: FormField) -> AuthoringResult:
        existing, refusal = self._form(definition_id)
        if refusal is not None:
            return refusal
        return self._set_fields(existing, existing.fields + (form_field,))

    def update_field(self, definition_id: str, form_field: FormField) -> AuthoringResult:
        existing, refusal = self._form(definition_id)
        if refusal is not None:
            return refusal
        if not any(f.id == form_field.id for f in existing.fields):
            return _refused(
                ValidationReason.MISSING,
                f"field {form_field.id} not found in {definition_id}",
            )
        fields = tuple(form_field if f.id == form_field.id else f for f in existing.fields)
        return self._set_fields(existing, fields)

    def remove_field(self, definition_id: str, field_id: str) -> AuthoringResult:
        existing, refusal = self._form(definition_id)
        if refusal is not None:
            return refusal
        fields = tuple(f for f in existing.fields if f.id != field_id)
        if len(fields) == len(existing.fields):
            return _refused(
                ValidationReason.MISSING, f"field {field_id} not found in {definition_id}"
            )
        return self._set_fields(existing, fields)

    # Composite children ----------------------------------------------
    def add_child(
        self,
        parent_id: str,
        candidate_id: str,
        name: Optional[str] = None,
        overrides: Optional[InstanceOverrides] = None,
    ) -> AuthoringResult:
        """Append ``candidate_id`` to the children of ``parent_id``."""
        parent, refusal = self._editable(parent_id)
        if refusal is not None:
            return refusal
        admissibility = CompositionGraph(self._entries.values()).check(
            candidate_id, parent_id
        )
        if not admissibility.admissible:
            return _refused(
                admissibility.reason,
                f"{candidate_id} cannot be added under {parent_id}",
            )
        if overrides is not None and overrides.fields is not None:
            issue = _field_issue(overrides.fields)
            if issue is not None:
                return _refused(issue.reason, issue.message)

        candidate = self._entries[candidate_id]
        instance = ProcessInstance(
            definition_id=candidate_id,
            name=(name or "").strip() or candidate.name,
            overrides=overrides,
        )
        updated = parent.model_copy(update={"children": parent.children + (instance,)})
        self._put(updated)
        logger.info(f"Added {candidate_id} to {parent_id} as {instance.id}")
        return AuthoringResult(definition=updated)

    def remove_child(self, parent_id: str, instance_id: str) -> AuthoringResult:
        parent, refusal = self._editable(parent_id)
        if refusal is not None:
            return refusal
        children = tuple(c for c in parent.children if c.id != instance_id)
        if len(children) == len(parent.children):
            return _refused(
                ValidationReason.MISSING, f"child {instance_id} not found in {parent_id}"
            )
        updated = parent.model_copy(update={"children": children})
        self._put(updated)
        return AuthoringResult(definition=updated)

    def move_child(self, parent_id: str, instance_id: str, offset: int) -> AuthoringResult:
        """Move a child ``offset`` places; moves past either end are no-ops."""
        parent, refusal = self._editable(parent_id)
        if refusal is not None:
            return refusal
        children = list(parent.children)
        position = next((i for i, c in enumerate(children) if c.id == instance_id), None)
        if position is None:
            return _refused(
                ValidationReason.MISSING, f"child {instance_id} not found in {parent_id}"
            )
        target = position + offset
        if target < 0 or target >= len(children) or target == position:
            return AuthoringResult(definition=parent)
        children.insert(target, children.pop(position))
        updated = parent.model_copy(update={"children": tuple(children)})
        self._put(updated)
        return AuthoringResult(definition=updated)
