"""Write-once per-step definition snapshots for running executions."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..contracts import DefinitionLookup, ProcessDefinition, ProcessExecution, StepSnapshot
from ..errors import InvariantViolation
from .flattener import flatten
from .resolution import get_snapshot, resolve

logger = logging.getLogger(__name__)


def create_snapshot(
    root: ProcessDefinition,
    step_index: int,
    definitions: DefinitionLookup,
    execution: Optional[ProcessExecution] = None,
) -> Optional[StepSnapshot]:
    """Capture the definitions on the path from ``root`` to step ``step_index``.

    With ``execution`` the step is located in that execution's own step list,
    so steps already snapshotted keep their definitions and the new step is
    the one the execution is actually on. Without it the live tree is used.
    The root, every composite between it and the leaf, and the leaf itself end
    up in the snapshot. Returns ``None`` when the index is out of range.
    """
    if step_index < 0:
        return None
    if execution is None:
        resolved_root = definitions.get_definition(root.id) or root
    else:
        resolved_root = resolve(root.id, 0, execution, definitions) or root
    steps = flatten(resolved_root, definitions, execution)
    if step_index >= len(steps):
        return None

    step = steps[step_index]
    captured: Dict[str, ProcessDefinition] = {resolved_root.id: resolved_root}
    for level in step.hierarchy_path:
        captured[level.current.definition.id] = level.current.definition
    return StepSnapshot(step_index=step_index, definitions=captured)


def ensure_snapshot(
    execution: ProcessExecution,
    root: ProcessDefinition,
    definitions: DefinitionLookup,
) -> ProcessExecution:
    """Snapshot the current step once; later calls return ``execution`` as-is."""
    index = execution.current_step_index
    if index < 0:
        raise InvariantViolation(
            f"Execution {execution.id} has negative step index {index}"
        )
    if get_snapshot(execution, index) is not None:
        return execution

    snapshot = create_snapshot(root, index, definitions, execution)
    if snapshot is None:
        logger.debug(f"No step {index} to snapshot for execution {execution.id}")
        return execution

    logger.debug(
        f"Captured {len(snapshot.definitions)} definitions for step {index} of execution {execution.id}"
    )
    return execution.model_copy(
        update={"step_snapshots": execution.step_snapshots + (snapshot,)}
    )


__all__ = ["create_snapshot", "ensure_snapshot", "get_snapshot", "resolve"]
