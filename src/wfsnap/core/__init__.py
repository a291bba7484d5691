"""Core wfsnap modules: errors, outcomes and suite loading."""

from .exceptions import (
    ExecutionError,
    OutputFormatError,
    ParseError,
    SetupError,
    SetupTimeoutError,
    SnapshotMissingError,
    WfsnapError,
)
from .workflow_loader import WorkflowDefinition, WorkflowNode, load_skip_list, load_workflows
from .workflow_status import Outcome

__all__ = [
    "ExecutionError",
    "Outcome",
    "OutputFormatError",
    "ParseError",
    "SetupError",
    "SetupTimeoutError",
    "SnapshotMissingError",
    "WfsnapError",
    "WorkflowDefinition",
    "WorkflowNode",
    "load_skip_list",
    "load_workflows",
]
