"""SQLite implementation of the state repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..constants import STATE_DOCUMENT_KEY
from ..contracts import PersistedState
from ..errors import PersistenceError
from .repository import StateRepository


class SQLiteStateRepository(StateRepository):
    """Persist the state document using SQLite."""

    def __init__(self, db_path: str | Path, key: str = STATE_DOCUMENT_KEY):
        self.db_path = str(db_path)
        self.key = key
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS state_documents (
                key TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                saved_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def load_state(self) -> Optional[PersistedState]:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT document FROM state_documents WHERE key = ?",
            self.key,
        )
        if not row:
            return None
        try:
            return PersistedState.from_json(row["document"])
        except ValidationError as exc:
            raise PersistenceError(
                f"Stored state in {self.db_path} is not a valid document: {exc}"
            ) from exc

    async def save_state(self, state: PersistedState) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO state_documents (key, document, saved_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET document = excluded.document, saved_at = excluded.saved_at
            """,
            self.key,
            state.to_json(),
            datetime.now(timezone.utc).isoformat(),
        )

    async def clear(self) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM state_documents WHERE key = ?",
            self.key,
        )
