"""Workflow execution through the platform CLI."""

from .cli_executor import ExecutionOutcome, WorkflowCliExecutor

__all__ = [
    "ExecutionOutcome",
    "WorkflowCliExecutor",
]
