"""Error values and exceptions used across procflow.

Expected conditions (refused authoring operations, illegal transitions,
unresolvable references) are reported as values. Exceptions are reserved for
programming errors and host-level failures.
"""

from __future__ import annotations

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict


class ProcflowError(Exception):
    """Base class for procflow exceptions."""


class InvariantViolation(ProcflowError):
    """Raised when engine state breaks an invariant it relies on."""


class PersistenceError(ProcflowError):
    """Raised when a state document cannot be read or written."""


class ValidationReason(str, Enum):
    CYCLIC = "cyclic"
    NO_FIELDS = "no_fields"
    DUPLICATE_CODE = "duplicate_code"
    INVALID_CODE = "invalid_code"
    DUPLICATE_FIELD = "duplicate_field"
    IMMUTABLE_BASE = "immutable_base"
    MISSING = "missing"
    NOT_COMPOSITE = "not_composite"
    NOT_DERIVABLE = "not_derivable"
    EMPTY_NAME = "empty_name"
    NOT_FORM = "not_form"
    INVALID_PATTERN = "invalid_pattern"


class TransitionReason(str, Enum):
    TERMINAL = "terminal"
    NO_STEPS = "no_steps"
    WRONG_KIND = "wrong_kind"
    MISSING = "missing"
    NOT_COMPOSITE = "not_composite"
    STEP_UNAVAILABLE = "step_unavailable"


class GapReason(str, Enum):
    UNRESOLVED = "unresolved"
    CYCLE = "cycle"


class ValidationIssue(BaseModel):
    """An authoring operation was refused."""

    model_config = ConfigDict(frozen=True)

    reason: ValidationReason
    message: str = ""

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.message}" if self.message else self.reason.value


class IllegalTransition(BaseModel):
    """A transition was refused; the execution is left untouched."""

    model_config = ConfigDict(frozen=True)

    reason: TransitionReason
    message: str = ""

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.message}" if self.message else self.reason.value


class ResolutionGap(BaseModel):
    """A child instance that contributed no step while flattening."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    definition_id: str
    path: Tuple[str, ...] = ()
    reason: GapReason = GapReason.UNRESOLVED
