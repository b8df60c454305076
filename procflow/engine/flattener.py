"""Expand nested composite definitions into an ordered list of executable steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..contracts import (
    DefinitionLookup,
    ProcessDefinition,
    ProcessExecution,
    ProcessInstance,
    ProcessKind,
)
from ..errors import GapReason, ResolutionGap
from .resolution import LiveResolver, Resolver, SnapshotResolver

logger = logging.getLogger(__name__)


class SiblingRange(BaseModel):
    """A child slot and the flat ``[start, end)`` range its steps occupy."""

    model_config = ConfigDict(frozen=True)

    instance: ProcessInstance
    definition: ProcessDefinition
    start: int
    end: int

    @property
    def width(self) -> int:
        return self.end - self.start

    @property
    def name(self) -> str:
        return self.instance.display_name

    def contains(self, index: int) -> bool:
        return self.start <= index < self.end


class HierarchyLevel(BaseModel):
    """The full sibling group at one nesting level and our position in it."""

    model_config = ConfigDict(frozen=True)

    siblings: Tuple[SiblingRange, ...]
    position: int

    @property
    def current(self) -> SiblingRange:
        return self.siblings[self.position]

    @property
    def start(self) -> int:
        return self.siblings[0].start

    @property
    def end(self) -> int:
        return self.siblings[-1].end

    def progress(self) -> Tuple[int, int]:
        """Return ``(n, m)`` for "item n of m" at this level (1-based)."""
        return self.position + 1, len(self.siblings)


class FlattenedStep(BaseModel):
    """One executable leaf step in the flattened sequence."""

    model_config = ConfigDict(frozen=True)

    index: int
    instance: ProcessInstance
    definition: ProcessDefinition
    path: Tuple[str, ...] = ()
    hierarchy_path: Tuple[HierarchyLevel, ...] = ()

    @property
    def kind(self) -> ProcessKind:
        return self.definition.kind

    @property
    def name(self) -> str:
        return self.instance.display_name

    @property
    def parent_path(self) -> Tuple[str, ...]:
        return self.path[:-1]

    def breadcrumb(self, separator: str = " > ") -> str:
        return separator.join(self.path)


class FlattenResult(BaseModel):
    """Flattened steps plus the child references that produced no step."""

    steps: List[FlattenedStep] = Field(default_factory=list)
    gaps: List[ResolutionGap] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, index: int) -> FlattenedStep:
        return self.steps[index]

    @property
    def top_level(self) -> Tuple[SiblingRange, ...]:
        if not self.steps:
            return ()
        return self.steps[0].hierarchy_path[0].siblings


@dataclass
class _Node:
    instance: ProcessInstance
    definition: ProcessDefinition
    start: int
    end: int
    children: List["_Node"] = field(default_factory=list)


def _expand(
    children: Sequence[ProcessInstance],
    resolver: Resolver,
    start: int,
    path: Tuple[str, ...],
    chain: FrozenSet[str],
    gaps: List[ResolutionGap],
) -> List[_Node]:
    nodes: List[_Node] = []
    cursor = start
    for instance in children:
        name_path = path + (instance.display_name,)
        definition = resolver.resolve(instance.definition_id, cursor)
        if definition is None:
            logger.warning(
                f"Skipping {instance.display_name!r}: definition {instance.definition_id} not found"
            )
            gaps.append(
                ResolutionGap(
                    instance_id=instance.id,
                    definition_id=instance.definition_id,
                    path=name_path,
                )
            )
            continue

        if not definition.is_composite:
            nodes.append(_Node(instance, definition, cursor, cursor + 1))
            cursor += 1
            continue

        if definition.id in chain:
            logger.warning(
                f"Skipping {instance.display_name!r}: {definition.id} already on the path {path}"
            )
            gaps.append(
                ResolutionGap(
                    instance_id=instance.id,
                    definition_id=instance.definition_id,
                    path=name_path,
                    reason=GapReason.CYCLE,
                )
            )
            continue

        sub_nodes = _expand(
            definition.children,
            resolver,
            cursor,
            name_path,
            chain | {definition.id},
            gaps,
        )
        if not sub_nodes:
            continue
        end = sub_nodes[-1].end
        nodes.append(_Node(instance, definition, cursor, end, sub_nodes))
        cursor = end
    return nodes


def _emit(
    nodes: Sequence[_Node],
    levels: Tuple[HierarchyLevel, ...],
    steps: List[FlattenedStep],
) -> None:
    group = tuple(
        SiblingRange(
            instance=node.instance,
            definition=node.definition,
            start=node.start,
            end=node.end,
        )
        for node in nodes
    )
    for position, node in enumerate(nodes):
        here = levels + (HierarchyLevel(siblings=group, position=position),)
        if node.children:
            _emit(node.children, here, steps)
            continue
        steps.append(
            FlattenedStep(
                index=node.start,
                instance=node.instance,
                definition=node.definition,
                path=tuple(level.current.name for level in here),
                hierarchy_path=here,
            )
        )


def flatten_with_resolver(root: ProcessDefinition, resolver: Resolver) -> FlattenResult:
    """Flatten ``root`` resolving every child reference through ``resolver``."""
    resolved_root = resolver.resolve(root.id, 0) or root
    if not resolved_root.is_composite:
        logger.debug(f"Definition {root.id} is not a composite; nothing to flatten")
        return FlattenResult()

    gaps: List[ResolutionGap] = []
    nodes = _expand(
        resolved_root.children,
        resolver,
        0,
        (),
        frozenset({resolved_root.id}),
        gaps,
    )
    steps: List[FlattenedStep] = []
    _emit(nodes, (), steps)
    return FlattenResult(steps=steps, gaps=gaps)


def flatten_with_report(
    root: ProcessDefinition,
    definitions: DefinitionLookup,
    execution: Optional[ProcessExecution] = None,
) -> FlattenResult:
    """Flatten ``root``; snapshot-aware when ``execution`` is given."""
    if execution is None:
        resolver: Resolver = LiveResolver(definitions)
    else:
        resolver = SnapshotResolver(execution, definitions)
    return flatten_with_resolver(root, resolver)


def flatten(
    root: ProcessDefinition,
    definitions: DefinitionLookup,
    execution: Optional[ProcessExecution] = None,
) -> List[FlattenedStep]:
    """Return the ordered executable steps of the composite ``root``."""
    return flatten_with_report(root, definitions, execution).steps
