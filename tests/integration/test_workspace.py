"""Workspace behaviour across authoring, running and saving."""

import asyncio
import logging

from procflow.constants import BASE_FORM_ID
from procflow.contracts import ExecutionStatus, FormField, ProcessKind
from procflow.engine import get_snapshot
from procflow.errors import TransitionReason
from procflow.persistence import InMemoryStateRepository
from procflow.workspace import Workspace


def test_every_change_reaches_save_hooks(workspace):
    repo = InMemoryStateRepository()
    workspace.on_change(lambda state: asyncio.run(repo.save_state(state)))

    created = workspace.definitions.create_composite("Onboarding").definition
    workspace.definitions.add_child(created.id, "base-approval")
    started = workspace.start(created.id)
    workspace.approve(started.execution.id)

    assert repo.saves == 4
    saved = asyncio.run(repo.load_state())
    assert saved.executions[0].status == ExecutionStatus.COMPLETED


def test_refused_actions_do_not_save(workspace, workspace_flow):
    states = []
    started = workspace.start(workspace_flow.c)
    workspace.on_change(states.append)

    result = workspace.approve(started.execution.id)

    assert result.error.reason == TransitionReason.WRONG_KIND
    assert states == []


def test_failing_hook_keeps_state_in_memory(workspace, workspace_flow, caplog):
    def broken(state):
        raise OSError("disk full")

    workspace.on_change(broken)
    with caplog.at_level(logging.ERROR):
        result = workspace.start(workspace_flow.c)

    assert result.ok
    assert workspace.get_execution(result.execution.id) is not None
    assert "Save hook failed" in caplog.text


def test_unknown_ids_are_refused(workspace):
    assert workspace.start("process-missing").error.reason == TransitionReason.MISSING
    assert workspace.submit("exec-missing").error.reason == TransitionReason.MISSING
    assert workspace.mark_rejected("exec-missing").error.reason == TransitionReason.MISSING
    assert workspace.delete_execution("exec-missing") is False


def test_step_entered_after_edit_sees_edit_then_freezes(workspace, workspace_flow):
    store = workspace.definitions
    execution_id = workspace.start(workspace_flow.c).execution.id

    store.add_field(workspace_flow.form_b, FormField(name="currency"))
    workspace.submit(execution_id, {"title": "Trip"})
    store.add_field(workspace_flow.form_b, FormField(name="receipt"))

    step = workspace.current_step(execution_id)
    assert step.definition.field_names() == ["amount", "currency"]
    assert step.hierarchy_path[1].progress() == (1, 2)


def test_steps_stay_stable_when_root_changes(workspace, workspace_flow):
    store = workspace.definitions
    execution_id = workspace.start(workspace_flow.c).execution.id

    root = store.get_definition(workspace_flow.c)
    store.remove_child(root.id, root.children[1].id)

    assert len(workspace.steps(execution_id)) == 3
    assert workspace.submit(execution_id, {"title": "x"}).execution.current_step_index == 1
    execution = workspace.get_execution(execution_id)
    assert workspace_flow.form_b in get_snapshot(execution, 1).definitions


def test_from_persisted_restores_custom_definitions(workspace, workspace_flow):
    workspace.start(workspace_flow.c)
    restored = Workspace.from_persisted(workspace.to_persisted())

    assert restored.definitions.get_definition(workspace_flow.c) is not None
    assert len(restored.list_executions()) == 1
    assert restored.selected_execution_id is None
    assert Workspace.from_persisted(None).list_executions() == []


def test_selection_follows_deletes(workspace, workspace_flow):
    workspace.select_definition(workspace_flow.form_a)
    execution_id = workspace.start(workspace_flow.c).execution.id
    assert workspace.selected_execution_id == execution_id

    workspace.definitions.delete_definition(workspace_flow.form_a)
    assert workspace.selected_definition_id is None

    workspace.delete_execution(execution_id)
    assert workspace.selected_execution_id is None


def test_abandon_and_clear(workspace, workspace_flow):
    execution_id = workspace.start(workspace_flow.c).execution.id

    assert workspace.mark_rejected(execution_id).execution.status == ExecutionStatus.REJECTED
    assert workspace.submit(execution_id, {}).error.reason == TransitionReason.TERMINAL

    workspace.clear_executions()
    assert workspace.list_executions() == []


def test_snapshot_tracks_execution_steps_after_root_edit(workspace, workspace_flow):
    store = workspace.definitions
    execution_id = workspace.start(workspace_flow.c).execution.id

    intro = store.derive(BASE_FORM_ID, "Intro").definition
    store.add_field(intro.id, FormField(name="reason"))
    store.add_child(workspace_flow.c, intro.id)
    inserted = store.get_definition(workspace_flow.c).children[-1]
    store.move_child(workspace_flow.c, inserted.id, -2)
    assert store.get_definition(workspace_flow.c).children[0].id == inserted.id

    workspace.submit(execution_id, {"title": "Trip"})

    captured = get_snapshot(workspace.get_execution(execution_id), 1).definitions
    assert set(captured) == {workspace_flow.c, workspace_flow.d, workspace_flow.form_b}

    d = store.get_definition(workspace_flow.d)
    store.remove_child(workspace_flow.d, d.children[0].id)

    step = workspace.current_step(execution_id)
    assert step.definition.id == workspace_flow.form_b
    assert step.kind == ProcessKind.FORM
    assert workspace.submit(execution_id, {"amount": 5}).execution.current_step_index == 2
