"""Tests for expanding nested composites into executable steps."""

from procflow.constants import BASE_APPROVAL_ID
from procflow.contracts import (
    FormField,
    InstanceOverrides,
    ProcessDefinition,
    ProcessInstance,
    ProcessKind,
)
from procflow.definitions import DefinitionStore
from procflow.engine import flatten, flatten_with_report
from procflow.errors import GapReason


def test_nested_flow_flattens_depth_first(store, flow):
    steps = flatten(store.get_definition(flow.c), store)

    assert [s.index for s in steps] == [0, 1, 2]
    assert [s.definition.id for s in steps] == [flow.form_a, flow.form_b, flow.approval_e]
    assert [s.kind for s in steps] == [
        ProcessKind.FORM,
        ProcessKind.FORM,
        ProcessKind.APPROVAL,
    ]
    assert steps[2].path == ("D", "Approval E")
    assert steps[2].parent_path == ("D",)
    assert steps[2].breadcrumb() == "D > Approval E"


def test_top_level_ranges(store, flow):
    result = flatten_with_report(store.get_definition(flow.c), store)

    ranges = [(r.name, r.start, r.end) for r in result.top_level]
    assert ranges == [("Form A", 0, 1), ("D", 1, 3)]
    assert result.top_level[1].width == 2


def test_hierarchy_path_has_one_level_per_path_element(store, flow):
    steps = flatten(store.get_definition(flow.c), store)

    for step in steps:
        assert len(step.hierarchy_path) == len(step.path)
        for level in step.hierarchy_path:
            assert level.current.contains(step.index)

    approval = steps[2]
    assert approval.hierarchy_path[0].progress() == (2, 2)
    assert approval.hierarchy_path[1].progress() == (2, 2)
    assert approval.hierarchy_path[1].start == 1
    assert approval.hierarchy_path[1].end == 3
    assert steps[1].hierarchy_path[1].progress() == (1, 2)


def test_sibling_ranges_partition_the_parent_range(store, flow):
    steps = flatten(store.get_definition(flow.c), store)

    for step in steps:
        for depth, level in enumerate(step.hierarchy_path):
            siblings = level.siblings
            for left, right in zip(siblings, siblings[1:]):
                assert left.end == right.start
            if depth == 0:
                assert (level.start, level.end) == (0, len(steps))
            else:
                parent = step.hierarchy_path[depth - 1].current
                assert (level.start, level.end) == (parent.start, parent.end)


def test_non_composite_root_has_no_steps(store, flow):
    assert flatten(store.get_definition(flow.form_a), store) == []


def test_empty_composite_is_omitted(store, flow):
    empty = store.create_composite("Empty").definition
    outer = store.create_composite("Outer").definition
    store.add_child(outer.id, empty.id)
    store.add_child(outer.id, flow.form_a)

    result = flatten_with_report(store.get_definition(outer.id), store)

    assert [s.name for s in result.steps] == ["Form A"]
    assert len(result.top_level) == 1
    assert result.gaps == []


def test_dangling_reference_is_skipped_and_reported(store, flow):
    store.delete_definition(flow.form_b)

    result = flatten_with_report(store.get_definition(flow.c), store)

    assert [s.definition.id for s in result.steps] == [flow.form_a, flow.approval_e]
    assert [s.index for s in result.steps] == [0, 1]
    assert len(result.gaps) == 1
    gap = result.gaps[0]
    assert gap.definition_id == flow.form_b
    assert gap.path == ("D", "Form B")
    assert gap.reason == GapReason.UNRESOLVED


def test_cycle_in_stored_data_becomes_a_gap():
    form = ProcessDefinition(
        id="f",
        name="F",
        kind=ProcessKind.FORM,
        fields=(FormField(name="x"),),
    )
    x = ProcessDefinition(
        id="x",
        name="X",
        kind=ProcessKind.COMPOSITE,
        children=(ProcessInstance(definition_id="y", name="Y"),),
    )
    y = ProcessDefinition(
        id="y",
        name="Y",
        kind=ProcessKind.COMPOSITE,
        children=(
            ProcessInstance(definition_id="x", name="X again"),
            ProcessInstance(definition_id="f", name="F"),
        ),
    )
    store = DefinitionStore([form, x, y])

    result = flatten_with_report(x, store)

    assert [s.path for s in result.steps] == [("Y", "F")]
    assert [g.reason for g in result.gaps] == [GapReason.CYCLE]


def test_instance_override_name_is_used(store, flow):
    store.add_child(
        flow.c,
        BASE_APPROVAL_ID,
        name="Final",
        overrides=InstanceOverrides(name="Manager sign-off"),
    )

    steps = flatten(store.get_definition(flow.c), store)

    assert steps[-1].name == "Manager sign-off"
    assert steps[-1].index == 3
