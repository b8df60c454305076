"""State machine driving an execution through its flattened steps.

Every transition takes an execution value and returns a
:class:`TransitionResult` holding a new execution. A refused transition
returns the input execution untouched together with an
:class:`~procflow.errors.IllegalTransition`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..contracts import (
    DefinitionLookup,
    ExecutionStatus,
    HistoryAction,
    ProcessDefinition,
    ProcessExecution,
    ProcessKind,
    StepHistory,
)
from ..errors import IllegalTransition, InvariantViolation, TransitionReason
from .flattener import FlattenedStep, flatten
from .snapshots import ensure_snapshot

logger = logging.getLogger(__name__)


class TransitionResult(BaseModel):
    """New execution value, or the unchanged one plus the refusal.

    ``execution`` is only ``None`` when there was no execution to return,
    e.g. a refused start or an unknown execution id.
    """

    model_config = ConfigDict(frozen=True)

    execution: Optional[ProcessExecution] = None
    error: Optional[IllegalTransition] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def refused(reason: TransitionReason, message: str) -> TransitionResult:
    """A refusal with no execution attached."""
    logger.warning(f"Refused: {message}")
    return TransitionResult(error=IllegalTransition(reason=reason, message=message))


def _refuse(
    execution: ProcessExecution, reason: TransitionReason, message: str
) -> TransitionResult:
    logger.warning(f"Refused transition on execution {execution.id}: {message}")
    return TransitionResult(
        execution=execution, error=IllegalTransition(reason=reason, message=message)
    )


def _current(
    execution: ProcessExecution,
    root: ProcessDefinition,
    definitions: DefinitionLookup,
    required: ProcessKind,
) -> Tuple[List[FlattenedStep], Optional[TransitionResult]]:
    """Shared guard: returns the step list, or a refusal."""
    if execution.is_terminal:
        return [], _refuse(
            execution,
            TransitionReason.TERMINAL,
            f"execution is already {execution.status.value}",
        )
    if root.id != execution.definition_id:
        return [], _refuse(
            execution,
            TransitionReason.MISSING,
            f"definition {root.id} does not belong to this execution",
        )

    steps = flatten(root, definitions, execution)
    if not steps:
        return [], _refuse(execution, TransitionReason.NO_STEPS, "no executable steps")

    index = execution.current_step_index
    if index < 0:
        raise InvariantViolation(f"Execution {execution.id} has negative step index {index}")
    if index >= len(steps):
        return [], _refuse(
            execution,
            TransitionReason.STEP_UNAVAILABLE,
            f"step {index} is not available ({len(steps)} steps)",
        )

    step = steps[index]
    if step.kind != required:
        return [], _refuse(
            execution,
            TransitionReason.WRONG_KIND,
            f"current step {step.name!r} is {step.kind.value}, expected {required.value}",
        )
    return steps, None


def _advance(
    execution: ProcessExecution,
    steps: List[FlattenedStep],
    entry: StepHistory,
    data: Optional[Dict[str, Any]] = None,
) -> TransitionResult:
    index = execution.current_step_index
    next_index = index + 1
    completed = next_index >= len(steps)
    update: Dict[str, Any] = {
        "history": execution.history + (entry,),
        "status": ExecutionStatus.COMPLETED if completed else ExecutionStatus.IN_PROGRESS,
        "current_step_index": index if completed else next_index,
    }
    if data is not None:
        update["data"] = data

    if completed:
        logger.info(f"Execution {execution.id} completed at step {index}")
    else:
        logger.info(
            f"Execution {execution.id} advanced from step {index} to {next_index} ({entry.action.value})"
        )
    return TransitionResult(execution=execution.model_copy(update=update))


def _merged(execution: ProcessExecution, data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    merged = dict(execution.data)
    merged.update(data or {})
    return merged


def submit(
    execution: ProcessExecution,
    root: ProcessDefinition,
    definitions: DefinitionLookup,
    data: Optional[Mapping[str, Any]] = None,
) -> TransitionResult:
    """Submit form data on the current form step and move on."""
    steps, refusal = _current(execution, root, definitions, ProcessKind.FORM)
    if refusal is not None:
        return refusal
    submitted = dict(data or {})
    entry = StepHistory(
        step_index=execution.current_step_index,
        action=HistoryAction.SUBMIT,
        data=submitted,
    )
    return _advance(execution, steps, entry, data=_merged(execution, submitted))


def approve(
    execution: ProcessExecution,
    root: ProcessDefinition,
    definitions: DefinitionLookup,
) -> TransitionResult:
    """Approve the current approval step and move on."""
    steps, refusal = _current(execution, root, definitions, ProcessKind.APPROVAL)
    if refusal is not None:
        return refusal
    entry = StepHistory(step_index=execution.current_step_index, action=HistoryAction.APPROVE)
    return _advance(execution, steps, entry)


def reject(
    execution: ProcessExecution,
    root: ProcessDefinition,
    definitions: DefinitionLookup,
) -> TransitionResult:
    """Send the execution back to the nearest preceding form step (or step 0)."""
    steps, refusal = _current(execution, root, definitions, ProcessKind.APPROVAL)
    if refusal is not None:
        return refusal

    index = execution.current_step_index
    target = 0
    for candidate in range(index - 1, -1, -1):
        if steps[candidate].kind == ProcessKind.FORM:
            target = candidate
            break

    entry = StepHistory(step_index=index, action=HistoryAction.REJECT)
    logger.info(f"Execution {execution.id} rejected at step {index}, back to step {target}")
    return TransitionResult(
        execution=execution.model_copy(
            update={
                "history": execution.history + (entry,),
                "current_step_index": target,
                "status": ExecutionStatus.IN_PROGRESS,
            }
        )
    )


def complete_reference(
    execution: ProcessExecution,
    root: ProcessDefinition,
    definitions: DefinitionLookup,
) -> TransitionResult:
    """Finish the current reference step and move on."""
    steps, refusal = _current(execution, root, definitions, ProcessKind.REFERENCE)
    if refusal is not None:
        return refusal
    entry = StepHistory(step_index=execution.current_step_index, action=HistoryAction.SUBMIT)
    return _advance(execution, steps, entry)


def edit_reference(
    execution: ProcessExecution,
    root: ProcessDefinition,
    definitions: DefinitionLookup,
    data: Optional[Mapping[str, Any]] = None,
) -> TransitionResult:
    """Edit accumulated data from a reference step without moving."""
    _, refusal = _current(execution, root, definitions, ProcessKind.REFERENCE)
    if refusal is not None:
        return refusal
    update: Dict[str, Any] = {"data": _merged(execution, data)}
    if execution.status == ExecutionStatus.PENDING:
        update["status"] = ExecutionStatus.IN_PROGRESS
    return TransitionResult(execution=execution.model_copy(update=update))


def start_execution(
    root: ProcessDefinition,
    definitions: DefinitionLookup,
    instance_name: str = "",
) -> TransitionResult:
    """Create an in-progress execution of ``root`` with its first step snapshotted."""
    if not root.is_composite:
        return refused(
            TransitionReason.NOT_COMPOSITE,
            f"{root.id} is a {root.kind.value} definition",
        )
    if not flatten(root, definitions):
        return refused(TransitionReason.NO_STEPS, f"{root.id} has no executable steps")

    execution = ProcessExecution(
        instance_name=instance_name.strip() or root.name,
        definition_id=root.id,
        status=ExecutionStatus.IN_PROGRESS,
    )
    logger.info(f"Started execution {execution.id} of {root.id}")
    return TransitionResult(execution=ensure_snapshot(execution, root, definitions))


def mark_rejected(execution: ProcessExecution) -> TransitionResult:
    """Terminate ``execution`` as rejected (host decision, not a step action)."""
    if execution.is_terminal:
        return _refuse(
            execution,
            TransitionReason.TERMINAL,
            f"execution is already {execution.status.value}",
        )
    logger.info(f"Execution {execution.id} marked as rejected")
    return TransitionResult(
        execution=execution.model_copy(update={"status": ExecutionStatus.REJECTED})
    )
