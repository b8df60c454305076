"""Composition graph checks run before a definition is nested in another."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Set

from pydantic import BaseModel, ConfigDict

from ..contracts import ProcessDefinition, ProcessKind
from ..errors import ValidationReason

logger = logging.getLogger(__name__)


class Admissibility(BaseModel):
    """Outcome of checking whether a definition may become a child."""

    model_config = ConfigDict(frozen=True)

    admissible: bool
    reason: Optional[ValidationReason] = None

    def __bool__(self) -> bool:
        return self.admissible


ADMISSIBLE = Admissibility(admissible=True)


class CompositionGraph:
    """Descendant reachability over ``children[*].definition_id`` edges.

    Reachability sets are computed lazily and cached; the walk keeps a visited
    set so cyclic input still terminates.
    """

    def __init__(self, definitions: Iterable[ProcessDefinition]) -> None:
        self._definitions: Dict[str, ProcessDefinition] = {d.id: d for d in definitions}
        self._reach: Dict[str, FrozenSet[str]] = {}

    def __contains__(self, definition_id: str) -> bool:
        return definition_id in self._definitions

    def get(self, definition_id: str) -> Optional[ProcessDefinition]:
        return self._definitions.get(definition_id)

    def descendants(self, definition_id: str) -> FrozenSet[str]:
        """Return every definition id reachable below ``definition_id``."""
        cached = self._reach.get(definition_id)
        if cached is not None:
            return cached

        seen: Set[str] = set()
        stack = [definition_id]
        while stack:
            current = self._definitions.get(stack.pop())
            if current is None:
                continue
            for child in current.children:
                if child.definition_id in seen:
                    continue
                seen.add(child.definition_id)
                stack.append(child.definition_id)

        result = frozenset(seen)
        self._reach[definition_id] = result
        return result

    def reachability(self) -> Dict[str, FrozenSet[str]]:
        """Descendant sets for every known definition."""
        return {def_id: self.descendants(def_id) for def_id in self._definitions}

    def ancestors(self, definition_id: str) -> Set[str]:
        """Ids of definitions that contain ``definition_id`` somewhere below them."""
        return {
            def_id
            for def_id in self._definitions
            if definition_id in self.descendants(def_id)
        }

    def has_cycle_through(self, definition_id: str) -> bool:
        return definition_id in self.descendants(definition_id)

    def check(self, candidate_id: str, parent_id: str) -> Admissibility:
        candidate = self._definitions.get(candidate_id)
        parent = self._definitions.get(parent_id)
        if candidate is None or parent is None:
            return Admissibility(admissible=False, reason=ValidationReason.MISSING)
        if parent.kind != ProcessKind.COMPOSITE:
            return Admissibility(admissible=False, reason=ValidationReason.NOT_COMPOSITE)
        if candidate_id == parent_id or parent_id in self.descendants(candidate_id):
            return Admissibility(admissible=False, reason=ValidationReason.CYCLIC)
        if candidate.kind == ProcessKind.FORM and not candidate.fields:
            return Admissibility(admissible=False, reason=ValidationReason.NO_FIELDS)
        return ADMISSIBLE


def validate_composition(
    candidate_id: str,
    parent_id: str,
    definitions: Iterable[ProcessDefinition],
) -> Admissibility:
    """Check whether ``candidate_id`` may be added as a child of ``parent_id``."""
    result = CompositionGraph(definitions).check(candidate_id, parent_id)
    if not result.admissible:
        logger.debug(
            f"Composition of {candidate_id} under {parent_id} refused: {result.reason.value}"
        )
    return result


def inadmissible_children(
    parent_id: str, definitions: Iterable[ProcessDefinition]
) -> Dict[str, ValidationReason]:
    """Map every definition id that cannot be added under ``parent_id`` to its reason."""
    graph = CompositionGraph(definitions)
    blocked: Dict[str, ValidationReason] = {}
    for definition_id in graph.reachability():
        result = graph.check(definition_id, parent_id)
        if not result.admissible:
            blocked[definition_id] = result.reason
    return blocked
