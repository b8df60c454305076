"""procflow: composable business process templates and their executions."""

from .contracts import (
    ExecutionStatus,
    FormField,
    PersistedState,
    ProcessDefinition,
    ProcessExecution,
    ProcessInstance,
    ProcessKind,
)
from .definitions import BASE_DEFINITIONS, DefinitionStore
from .engine import flatten, start_execution, validate_composition
from .persistence import get_repository
from .workspace import Workspace

__version__ = "0.1.0"
__all__ = [
    "BASE_DEFINITIONS",
    "DefinitionStore",
    "ExecutionStatus",
    "FormField",
    "PersistedState",
    "ProcessDefinition",
    "ProcessExecution",
    "ProcessInstance",
    "ProcessKind",
    "Workspace",
    "flatten",
    "get_repository",
    "start_execution",
    "validate_composition",
]
