"""Host-side workspace tying definitions, executions and persistence hooks together."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .contracts import (
    PersistedState,
    ProcessDefinition,
    ProcessExecution,
)
from .definitions import DefinitionStore
from .engine import machine
from .engine.flattener import FlattenedStep, FlattenResult, flatten_with_report
from .engine.machine import TransitionResult, refused
from .engine.resolution import resolve
from .engine.snapshots import ensure_snapshot
from .errors import TransitionReason

logger = logging.getLogger(__name__)

SaveHook = Callable[[PersistedState], None]


class Workspace:
    """In-memory application state with save-on-change hooks.

    Engine functions stay pure; the workspace applies the values they return,
    snapshots each newly entered step, and hands the resulting
    :class:`PersistedState` to every registered hook.
    """

    def __init__(
        self,
        definitions: Iterable[ProcessDefinition] = (),
        executions: Iterable[ProcessExecution] = (),
    ) -> None:
        self.definitions = DefinitionStore(definitions)
        self._executions: Dict[str, ProcessExecution] = {e.id: e for e in executions}
        self._hooks: List[SaveHook] = []
        self.selected_definition_id: Optional[str] = None
        self.selected_execution_id: Optional[str] = None
        self.definitions.add_listener(self._definitions_changed)

    @classmethod
    def from_persisted(cls, state: Optional[PersistedState]) -> "Workspace":
        """Build a workspace from a loaded document.

        Base entries in the document are replaced by the built-in set and
        selection starts empty.
        """
        if state is None:
            return cls()
        return cls(definitions=state.definitions, executions=state.executions)

    def to_persisted(self) -> PersistedState:
        return PersistedState(
            definitions=self.definitions.list_definitions(),
            executions=list(self._executions.values()),
        )

    # ------------------------------------------------------------------
    # Hooks
    def on_change(self, hook: SaveHook) -> None:
        """Register ``hook`` to receive the state after every change."""
        self._hooks.append(hook)

    def _notify(self) -> None:
        if not self._hooks:
            return
        state = self.to_persisted()
        for hook in list(self._hooks):
            try:
                hook(state)
            except Exception:
                logger.exception("Save hook failed; state kept in memory")

    def _definitions_changed(self) -> None:
        if (
            self.selected_definition_id is not None
            and self.selected_definition_id not in self.definitions
        ):
            self.selected_definition_id = None
        self._notify()

    # ------------------------------------------------------------------
    # Selection
    def select_definition(self, definition_id: Optional[str]) -> None:
        self.selected_definition_id = definition_id

    def select_execution(self, execution_id: Optional[str]) -> None:
        self.selected_execution_id = execution_id

    # ------------------------------------------------------------------
    # Executions
    def list_executions(self) -> List[ProcessExecution]:
        return list(self._executions.values())

    def get_execution(self, execution_id: str) -> Optional[ProcessExecution]:
        return self._executions.get(execution_id)

    def _root_for(self, execution: ProcessExecution) -> Optional[ProcessDefinition]:
        return resolve(execution.definition_id, 0, execution, self.definitions)

    def steps(self, execution_id: str) -> FlattenResult:
        """Snapshot-aware step list of an execution (empty if unknown)."""
        execution = self._executions.get(execution_id)
        if execution is None:
            return FlattenResult()
        root = self._root_for(execution)
        if root is None:
            return FlattenResult()
        return flatten_with_report(root, self.definitions, execution)

    def current_step(self, execution_id: str) -> Optional[FlattenedStep]:
        execution = self._executions.get(execution_id)
        if execution is None:
            return None
        result = self.steps(execution_id)
        index = execution.current_step_index
        return result.steps[index] if 0 <= index < len(result.steps) else None

    def start(self, definition_id: str, instance_name: str = "") -> TransitionResult:
        """Start a new execution of a composite definition."""
        root = self.definitions.get_definition(definition_id)
        if root is None:
            return refused(TransitionReason.MISSING, f"definition {definition_id} not found")
        result = machine.start_execution(root, self.definitions, instance_name)
        if result.ok:
            self._executions[result.execution.id] = result.execution
            self.selected_execution_id = result.execution.id
            self._notify()
        return result

    def _apply(
        self,
        execution_id: str,
        transition: Callable[..., TransitionResult],
        *args: Any,
    ) -> TransitionResult:
        execution = self._executions.get(execution_id)
        if execution is None:
            return refused(TransitionReason.MISSING, f"execution {execution_id} not found")
        root = self._root_for(execution)
        if root is None:
            return refused(
                TransitionReason.MISSING,
                f"definition {execution.definition_id} not found",
            )

        result = transition(execution, root, self.definitions, *args)
        if not result.ok:
            return result

        updated = result.execution
        if not updated.is_terminal:
            updated = ensure_snapshot(updated, root, self.definitions)
        self._executions[updated.id] = updated
        self._notify()
        return TransitionResult(execution=updated)

    def submit(
        self, execution_id: str, data: Optional[Mapping[str, Any]] = None
    ) -> TransitionResult:
        return self._apply(execution_id, machine.submit, data)

    def approve(self, execution_id: str) -> TransitionResult:
        return self._apply(execution_id, machine.approve)

    def reject(self, execution_id: str) -> TransitionResult:
        return self._apply(execution_id, machine.reject)

    def complete_reference(self, execution_id: str) -> TransitionResult:
        return self._apply(execution_id, machine.complete_reference)

    def edit_reference(
        self, execution_id: str, data: Optional[Mapping[str, Any]] = None
    ) -> TransitionResult:
        return self._apply(execution_id, machine.edit_reference, data)

    def mark_rejected(self, execution_id: str) -> TransitionResult:
        """Terminate an execution as rejected."""
        execution = self._executions.get(execution_id)
        if execution is None:
            return refused(TransitionReason.MISSING, f"execution {execution_id} not found")
        result = machine.mark_rejected(execution)
        if result.ok:
            self._executions[execution_id] = result.execution
            self._notify()
        return result

    def delete_execution(self, execution_id: str) -> bool:
        if self._executions.pop(execution_id, None) is None:
            return False
        if self.selected_execution_id == execution_id:
            self.selected_execution_id = None
        self._notify()
        return True

    def clear_executions(self) -> None:
        self._executions = {}
        self.selected_execution_id = None
        self._notify()
