from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, field_validator

from .constants import CONFIG_ENV_VAR, DATABASE_URL_ENV_VAR, DEFAULT_CONFIG_PATH


class StoreConfig(BaseModel):
    """Where the workspace state document lives."""

    backend: Literal["inmemory", "sqlite", "json"] = "inmemory"
    path: Optional[str] = None


class ProcflowConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = StoreConfig()
    database_url: Optional[str] = None
    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "WARNING"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


def load_config(path: Optional[str] = None) -> ProcflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PROCFLOW_CONFIG env
            variable or 'procflow.yaml' in the current directory.
    """

    config_path = path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ProcflowConfig(**data)
    else:
        config = ProcflowConfig()

    env_db_url = os.getenv(DATABASE_URL_ENV_VAR)
    if env_db_url:
        config.database_url = env_db_url
    return config
