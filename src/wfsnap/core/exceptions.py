"""Custom exceptions for wfsnap."""

import json
from pathlib import Path
from typing import Any, Optional, Union


class WfsnapError(Exception):
    """Base exception for all wfsnap errors."""

    pass


class ParseError(WfsnapError):
    """Raised when a workflow definition or skip list cannot be parsed.

    A parse error aborts the whole run: the suite is never partially loaded.
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = str(path) if path is not None else None
        if self.path:
            message = f"{message} (file: {self.path})"
        super().__init__(message)


class OutputFormatError(WfsnapError):
    """Raised when the execution CLI produced non-empty output that is not JSON."""

    def __init__(self, message: str, raw_output: str = ""):
        self.raw_output = raw_output
        super().__init__(message)


class ExecutionError(WfsnapError):
    """Raised when the execution CLI failed with a non-transient error.

    Carries everything needed to diagnose the failure offline: the extracted
    message, the raw captured streams and the structured workflow error (if the
    CLI printed one).
    """

    def __init__(
        self,
        message: str,
        workflow_id: Optional[str] = None,
        stdout: str = "",
        stderr: str = "",
        workflow_error: Optional[dict[str, Any]] = None,
        exit_code: Optional[int] = None,
    ):
        self.workflow_id = workflow_id
        self.stdout = stdout
        self.stderr = stderr
        self.workflow_error = workflow_error
        self.exit_code = exit_code
        super().__init__(f"Workflow execution failed: {message}")

    def format_diagnostics(self) -> str:
        """Render the captured streams and parsed error for a failure report."""
        lines = [str(self)]
        if self.workflow_id is not None:
            lines.append(f"Workflow ID: {self.workflow_id}")
        if self.exit_code is not None:
            lines.append(f"Exit code: {self.exit_code}")
        lines.append("--- CLI Stdout ---")
        lines.append(self.stdout or "[No stdout]")
        lines.append("--- CLI Stderr ---")
        lines.append(self.stderr or "[No stderr]")
        if self.workflow_error:
            lines.append("--- Parsed Workflow Error ---")
            lines.append(json.dumps(self.workflow_error, indent=2, default=str))
        return "\n".join(lines)


class SnapshotMissingError(WfsnapError):
    """Raised in compare mode when no snapshot exists for a workflow."""

    def __init__(self, workflow_id: str, snapshot_path: Optional[Union[str, Path]] = None):
        self.workflow_id = workflow_id
        self.snapshot_path = str(snapshot_path) if snapshot_path is not None else None
        super().__init__(f"Snapshot not found for workflow {workflow_id}. Run with SNAPSHOTS=update to create it.")


class SetupTimeoutError(WfsnapError):
    """Raised when another worker holds the setup lock for too long."""

    def __init__(self, lock_path: Union[str, Path], timeout: float):
        self.lock_path = str(lock_path)
        self.timeout = timeout
        super().__init__(f"Timeout waiting for workflow setup lock after {timeout:g}s: {self.lock_path}")


class SetupError(WfsnapError):
    """Raised when the one-time suite setup (fixture import) fails."""

    pass
