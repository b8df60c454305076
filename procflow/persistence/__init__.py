"""Persistence layer for procflow workspace state."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ProcflowConfig, load_config
from ..constants import DATABASE_URL_ENV_VAR, DEFAULT_JSON_PATH, DEFAULT_SQLITE_PATH
from .inmemory import InMemoryStateRepository
from .jsonfile import JsonFileStateRepository
from .repository import StateRepository
from .sqlite import SQLiteStateRepository

_repository_instance: StateRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[ProcflowConfig] = None
) -> StateRepository:
    """Factory function to obtain a state repository.

    The backend is selected from ``database_url`` which can be provided
    explicitly, via environment variable ``PROCFLOW_DATABASE_URL``, or from
    loaded configuration (``database_url`` first, then ``store``). When
    nothing is configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv(DATABASE_URL_ENV_VAR)
        or getattr(config, "database_url", None)
    )

    if database_url:
        if database_url.startswith("sqlite://"):
            _repository_instance = SQLiteStateRepository(
                database_url.replace("sqlite://", "", 1)
            )
        elif database_url.startswith("json://"):
            _repository_instance = JsonFileStateRepository(
                database_url.replace("json://", "", 1)
            )
        else:
            raise ValueError(f"Unsupported database backend: {database_url}")
        return _repository_instance

    store = config.store
    if store.backend == "sqlite":
        _repository_instance = SQLiteStateRepository(store.path or DEFAULT_SQLITE_PATH)
    elif store.backend == "json":
        _repository_instance = JsonFileStateRepository(store.path or DEFAULT_JSON_PATH)
    else:
        _repository_instance = InMemoryStateRepository()
    return _repository_instance


__all__ = [
    "StateRepository",
    "InMemoryStateRepository",
    "JsonFileStateRepository",
    "SQLiteStateRepository",
    "get_repository",
]
