"""Repository abstraction for workspace state persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import PersistedState


class StateRepository(Protocol):
    """Protocol for state document persistence backends."""

    async def load_state(self) -> Optional[PersistedState]:
        """Return the stored document, or ``None`` if nothing was saved yet."""

    async def save_state(self, state: PersistedState) -> None:
        """Replace the stored document with ``state``."""

    async def clear(self) -> None:
        """Remove the stored document."""
