"""Core data contracts for procflow templates and executions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Return a fresh identifier such as ``process-3f2a...``."""
    return f"{prefix}-{uuid.uuid4().hex}"


class ProcessKind(str, Enum):
    FORM = "form"
    APPROVAL = "approval"
    REFERENCE = "reference"
    COMPOSITE = "composite"


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    CHECKBOX = "checkbox"


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.REJECTED)


class HistoryAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"


class FormField(BaseModel):
    """A single input collected by a form step."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("field"))
    name: str = Field(..., description="Attribute name used as the data key")
    label: str = ""
    type: FieldType = FieldType.TEXT
    required: bool = False
    validation: Optional[str] = Field(
        default=None, description="Regular expression the value must match"
    )


class InstanceOverrides(BaseModel):
    """Local customisations applied to one child slot of a composite."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    fields: Optional[Tuple[FormField, ...]] = None


class ProcessInstance(BaseModel):
    """Positioned reference from a composite to a child definition."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("instance"))
    definition_id: str
    name: str
    overrides: Optional[InstanceOverrides] = None

    @property
    def display_name(self) -> str:
        if self.overrides is not None and self.overrides.name:
            return self.overrides.name
        return self.name


class ProcessDefinition(BaseModel):
    """Reusable process template."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("process"))
    code: Optional[str] = None
    name: str
    kind: ProcessKind
    description: Optional[str] = None
    is_base: bool = False
    base_definition_id: Optional[str] = Field(
        default=None, description="Definition this one was derived from"
    )
    fields: Tuple[FormField, ...] = ()
    children: Tuple[ProcessInstance, ...] = ()

    @property
    def is_composite(self) -> bool:
        return self.kind == ProcessKind.COMPOSITE

    @property
    def has_fields(self) -> bool:
        return bool(self.fields)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


class StepHistory(BaseModel):
    """One entry of an execution's append-only action log."""

    model_config = ConfigDict(frozen=True)

    step_index: int
    action: HistoryAction
    timestamp: datetime = Field(default_factory=_utcnow)
    data: Optional[Dict[str, Any]] = None


class StepSnapshot(BaseModel):
    """Definitions reachable from a step, captured when it was first entered."""

    model_config = ConfigDict(frozen=True)

    step_index: int
    definitions: Dict[str, ProcessDefinition] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=_utcnow)


class ProcessExecution(BaseModel):
    """A running instance of a composite definition."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("exec"))
    instance_name: str = ""
    definition_id: str
    current_step_index: int = 0
    status: ExecutionStatus = ExecutionStatus.PENDING
    data: Dict[str, Any] = Field(default_factory=dict)
    history: Tuple[StepHistory, ...] = ()
    step_snapshots: Tuple[StepSnapshot, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class DefinitionLookup(Protocol):
    """Read access to the current set of process definitions."""

    def list_definitions(self) -> Sequence[ProcessDefinition]:
        """Return every known definition in store order."""

    def get_definition(self, definition_id: str) -> Optional[ProcessDefinition]:
        """Return the definition with ``definition_id`` or ``None``."""


class PersistedState(BaseModel):
    """Document shape written to and read from a state repository."""

    definitions: List[ProcessDefinition] = Field(default_factory=list)
    executions: List[ProcessExecution] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "PersistedState":
        return cls.model_validate_json(data)
