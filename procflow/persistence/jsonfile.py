"""JSON file implementation of the state repository."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..contracts import PersistedState
from ..errors import PersistenceError
from .repository import StateRepository


class JsonFileStateRepository(StateRepository):
    """Persist the state document as a single JSON file.

    Writes go to a temporary file in the same directory which then replaces
    the target, so readers never see a half-written document.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def load_state(self) -> Optional[PersistedState]:
        raw = await asyncio.to_thread(self._read)
        if raw is None:
            return None
        try:
            return PersistedState.from_json(raw)
        except ValidationError as exc:
            raise PersistenceError(f"{self.path} is not a valid state document: {exc}") from exc

    async def save_state(self, state: PersistedState) -> None:
        await asyncio.to_thread(self._write, state.model_dump_json(indent=2))

    async def clear(self) -> None:
        await asyncio.to_thread(self.path.unlink, missing_ok=True)
