"""Composition validation, flattening, snapshots and the execution state machine."""

from __future__ import annotations

from .flattener import (
    FlattenedStep,
    FlattenResult,
    HierarchyLevel,
    SiblingRange,
    flatten,
    flatten_with_report,
)
from .machine import (
    TransitionResult,
    approve,
    complete_reference,
    edit_reference,
    mark_rejected,
    refused,
    reject,
    start_execution,
    submit,
)
from .resolution import LiveResolver, SnapshotResolver, get_snapshot, resolve
from .snapshots import create_snapshot, ensure_snapshot
from .validator import (
    Admissibility,
    CompositionGraph,
    inadmissible_children,
    validate_composition,
)

__all__ = [
    "Admissibility",
    "CompositionGraph",
    "FlattenedStep",
    "FlattenResult",
    "HierarchyLevel",
    "LiveResolver",
    "SiblingRange",
    "SnapshotResolver",
    "TransitionResult",
    "approve",
    "complete_reference",
    "create_snapshot",
    "edit_reference",
    "ensure_snapshot",
    "flatten",
    "flatten_with_report",
    "get_snapshot",
    "inadmissible_children",
    "mark_rejected",
    "refused",
    "reject",
    "resolve",
    "start_execution",
    "submit",
    "validate_composition",
]
