"""In-memory implementation of the state repository."""

from __future__ import annotations

from typing import Optional

from ..contracts import PersistedState
from .repository import StateRepository


class InMemoryStateRepository(StateRepository):
    """Keep the state document in local memory.

    Useful for tests or when no store is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._document: Optional[str] = None
        self.saves = 0

    async def load_state(self) -> Optional[PersistedState]:
        if self._document is None:
            return None
        return PersistedState.from_json(self._document)

    async def save_state(self, state: PersistedState) -> None:
        # keep the serialized form so callers cannot mutate what was saved
        self._document = state.to_json()
        self.saves += 1

    async def clear(self) -> None:
        self._document = None
