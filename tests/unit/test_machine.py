"""Tests for execution state transitions."""

import pytest

from procflow.constants import BASE_APPROVAL_ID, BASE_REFERENCE_ID
from procflow.contracts import (
    ExecutionStatus,
    HistoryAction,
    InstanceOverrides,
    ProcessExecution,
    ProcessKind,
)
from procflow.engine import (
    approve,
    complete_reference,
    edit_reference,
    flatten,
    mark_rejected,
    reject,
    start_execution,
    submit,
)
from procflow.errors import InvariantViolation, TransitionReason


@pytest.fixture
def root(store, flow):
    return store.get_definition(flow.c)


@pytest.fixture
def execution(root, store):
    return start_execution(root, store, "Trip to Berlin").execution


def test_start_execution(root, execution):
    assert execution.definition_id == root.id
    assert execution.instance_name == "Trip to Berlin"
    assert execution.status == ExecutionStatus.IN_PROGRESS
    assert execution.current_step_index == 0
    assert execution.history == ()


def test_start_defaults_name_to_definition(root, store):
    execution = start_execution(root, store).execution
    assert execution.instance_name == "C"


def test_start_refuses_non_composite_and_empty(store, flow):
    result = start_execution(store.get_definition(flow.form_a), store)
    assert not result.ok
    assert result.error.reason == TransitionReason.NOT_COMPOSITE

    empty = store.create_composite("Empty").definition
    result = start_execution(empty, store)
    assert result.error.reason == TransitionReason.NO_STEPS
    assert result.execution is None


def test_full_run_completes(root, store, execution):
    execution = submit(execution, root, store, {"title": "Berlin"}).execution
    assert execution.current_step_index == 1
    execution = submit(execution, root, store, {"amount": 120}).execution
    assert execution.current_step_index == 2

    result = approve(execution, root, store)

    assert result.ok
    done = result.execution
    assert done.status == ExecutionStatus.COMPLETED
    assert done.current_step_index == 2
    assert [h.action for h in done.history] == [
        HistoryAction.SUBMIT,
        HistoryAction.SUBMIT,
        HistoryAction.APPROVE,
    ]
    assert [h.step_index for h in done.history] == [0, 1, 2]
    assert done.data == {"title": "Berlin", "amount": 120}


def test_transitions_do_not_mutate_input(root, store, execution):
    after = submit(execution, root, store, {"title": "x"}).execution
    assert execution.current_step_index == 0
    assert execution.data == {}
    assert after is not execution


def test_reject_returns_to_previous_form(root, store, execution):
    execution = submit(execution, root, store, {"title": "a"}).execution
    execution = submit(execution, root, store, {"amount": 1}).execution

    result = reject(execution, root, store)

    rejected = result.execution
    assert rejected.current_step_index == 1
    assert rejected.status == ExecutionStatus.IN_PROGRESS
    assert rejected.history[-1].action == HistoryAction.REJECT
    assert rejected.history[-1].step_index == 2
    assert rejected.data == {"title": "a", "amount": 1}


def test_reject_without_preceding_form_goes_to_start(store):
    outer = store.create_composite("Approvals").definition
    store.add_child(outer.id, BASE_APPROVAL_ID)
    store.add_child(outer.id, BASE_APPROVAL_ID)
    root = store.get_definition(outer.id)
    execution = start_execution(root, store).execution
    execution = approve(execution, root, store).execution

    rejected = reject(execution, root, store).execution

    assert rejected.current_step_index == 0


def test_resubmission_overwrites_keys(root, store, execution):
    execution = submit(execution, root, store, {"title": "a"}).execution
    execution = submit(execution, root, store, {"amount": 1}).execution
    execution = reject(execution, root, store).execution

    execution = submit(execution, root, store, {"amount": 2}).execution

    assert execution.data == {"title": "a", "amount": 2}
    assert execution.history[-1].data == {"amount": 2}


def test_wrong_kind_is_refused(root, store, execution):
    result = approve(execution, root, store)

    assert not result.ok
    assert result.error.reason == TransitionReason.WRONG_KIND
    assert result.execution is execution


def test_terminal_execution_refuses_everything(root, store, execution):
    execution = submit(execution, root, store, {"title": "a"}).execution
    execution = submit(execution, root, store, {}).execution
    done = approve(execution, root, store).execution

    for result in (
        submit(done, root, store, {}),
        approve(done, root, store),
        reject(done, root, store),
        complete_reference(done, root, store),
        edit_reference(done, root, store, {"x": 1}),
        mark_rejected(done),
    ):
        assert result.error.reason == TransitionReason.TERMINAL
        assert result.execution is done


def test_unknown_or_shrunken_steps(root, store, execution):
    moved = execution.model_copy(update={"current_step_index": 7})
    assert submit(moved, root, store).error.reason == TransitionReason.STEP_UNAVAILABLE

    broken = execution.model_copy(update={"current_step_index": -1})
    with pytest.raises(InvariantViolation):
        submit(broken, root, store)


def test_root_must_match_execution(store, flow, execution):
    other = store.get_definition(flow.d)
    assert submit(execution, other, store).error.reason == TransitionReason.MISSING


def test_reference_steps(store):
    outer = store.create_composite("Review").definition
    store.add_child(outer.id, BASE_REFERENCE_ID)
    root = store.get_definition(outer.id)
    execution = ProcessExecution(definition_id=root.id)

    edited = edit_reference(execution, root, store, {"note": "checked"}).execution
    assert edited.data == {"note": "checked"}
    assert edited.current_step_index == 0
    assert edited.status == ExecutionStatus.IN_PROGRESS
    assert edited.history == ()

    done = complete_reference(edited, root, store).execution
    assert done.status == ExecutionStatus.COMPLETED
    assert done.history[-1].action == HistoryAction.SUBMIT


def test_mark_rejected(execution):
    result = mark_rejected(execution)
    assert result.execution.status == ExecutionStatus.REJECTED
    assert mark_rejected(result.execution).error.reason == TransitionReason.TERMINAL


def test_repeating_a_submission_leaves_data_unchanged(root, store, execution):
    first = submit(execution, root, store, {"title": "a"}).execution
    second = submit(first, root, store, {"title": "a"}).execution

    assert second.data == first.data == {"title": "a"}
    assert second.current_step_index == 2


def test_form_without_effective_fields_advances_on_empty_submit(store, flow):
    outer = store.create_composite("Acknowledge").definition
    store.add_child(outer.id, flow.form_a, overrides=InstanceOverrides(fields=()))
    store.add_child(outer.id, flow.approval_e)
    root = store.get_definition(outer.id)
    execution = start_execution(root, store).execution

    result = submit(execution, root, store)

    assert result.ok
    assert result.execution.current_step_index == 1
    assert result.execution.data == {}


def test_progression_is_monotonic_except_for_reject(store, flow):
    outer = store.create_composite("Quarter close").definition
    store.add_child(outer.id, flow.c)
    store.add_child(outer.id, BASE_REFERENCE_ID)
    root = store.get_definition(outer.id)
    execution = start_execution(root, store).execution
    steps = flatten(root, store, execution)
    assert [s.kind for s in steps][-1] == ProcessKind.REFERENCE
    rejected_once = False

    while not execution.is_terminal:
        index = execution.current_step_index
        kind = steps[index].kind
        if kind == ProcessKind.APPROVAL and not rejected_once:
            execution = reject(execution, root, store).execution
            rejected_once = True
            assert execution.current_step_index <= index
            continue
        if kind == ProcessKind.FORM:
            execution = submit(execution, root, store, {f"field{index}": index}).execution
        elif kind == ProcessKind.APPROVAL:
            execution = approve(execution, root, store).execution
        else:
            execution = complete_reference(execution, root, store).execution
        if execution.is_terminal:
            assert execution.current_step_index == len(steps) - 1
        else:
            assert execution.current_step_index > index

    assert execution.status == ExecutionStatus.COMPLETED
    assert rejected_once
