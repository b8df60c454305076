"""Shared constants for procflow."""

from __future__ import annotations

BASE_FORM_ID = "base-form"
BASE_APPROVAL_ID = "base-approval"
BASE_REFERENCE_ID = "base-reference"

DEFAULT_CONFIG_PATH = "procflow.yaml"
CONFIG_ENV_VAR = "PROCFLOW_CONFIG"
DATABASE_URL_ENV_VAR = "PROCFLOW_DATABASE_URL"

DEFAULT_SQLITE_PATH = "procflow.db"
DEFAULT_JSON_PATH = "procflow-state.json"

# Key of the single state document kept by document-style repositories.
STATE_DOCUMENT_KEY = "workflow-app-state"
