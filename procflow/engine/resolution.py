"""Definition lookup for flattening, live or through an execution's snapshots."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from ..contracts import DefinitionLookup, ProcessDefinition, ProcessExecution, StepSnapshot

logger = logging.getLogger(__name__)


class Resolver(Protocol):
    def resolve(self, definition_id: str, step_index: int) -> Optional[ProcessDefinition]:
        """Return the definition to use for a step at ``step_index``."""


class LiveResolver:
    """Resolve against the current definition store only."""

    def __init__(self, definitions: DefinitionLookup) -> None:
        self._definitions = definitions

    def resolve(self, definition_id: str, step_index: int) -> Optional[ProcessDefinition]:
        return self._definitions.get_definition(definition_id)


class SnapshotResolver:
    """Prefer an execution's step snapshots, falling back to the live store."""

    def __init__(self, execution: ProcessExecution, definitions: DefinitionLookup) -> None:
        self._definitions = definitions
        self._snapshots: Dict[int, StepSnapshot] = {}
        for snapshot in execution.step_snapshots:
            # first write wins
            self._snapshots.setdefault(snapshot.step_index, snapshot)

    def resolve(self, definition_id: str, step_index: int) -> Optional[ProcessDefinition]:
        snapshot = self._snapshots.get(step_index)
        if snapshot is not None:
            captured = snapshot.definitions.get(definition_id)
            if captured is not None:
                return captured
        return self._definitions.get_definition(definition_id)


def get_snapshot(execution: ProcessExecution, step_index: int) -> Optional[StepSnapshot]:
    """Return the snapshot recorded for ``step_index``, if any."""
    for snapshot in execution.step_snapshots:
        if snapshot.step_index == step_index:
            return snapshot
    return None


def resolve(
    definition_id: str,
    step_index: int,
    execution: ProcessExecution,
    definitions: DefinitionLookup,
) -> Optional[ProcessDefinition]:
    """Resolve one definition for ``execution`` at ``step_index``."""
    snapshot = get_snapshot(execution, step_index)
    if snapshot is not None and definition_id in snapshot.definitions:
        logger.debug(
            f"Resolved {definition_id} from snapshot {step_index} of execution {execution.id}"
        )
        return snapshot.definitions[definition_id]
    return definitions.get_definition(definition_id)
