"""Execution of saved workflows through the automation platform's CLI.

The CLI is invoked as ``<executable> execute --id="<id>" --rawOutput`` and
prints the execution result as JSON on stdout, possibly preceded by log lines.
Failures are classified: known transient upstream conditions (rate limits,
timeouts, connection resets, ...) become warnings, everything else is fatal.
"""

import json
import logging
import os
import subprocess
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import click

from wfsnap.core.exceptions import ExecutionError, OutputFormatError

if TYPE_CHECKING:
    from wfsnap.core.settings import HarnessSettings

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024  # 10MB

# Substrings (case-insensitive) of error messages caused by flaky upstream services
WARNING_PATTERNS: tuple[str, ...] = (
    "429",
    "rate limit",
    "timeout",
    "timed out",
    "econnreset",
    "econnrefused",
    "insufficient balance",
    "refresh token",
    "503",
    "502",
    "504",
)

UNKNOWN_ERROR_MESSAGE = "Unknown error during CLI execution."

_json_decoder = json.JSONDecoder()


def empty_result() -> dict[str, Any]:
    """Result shape used when the CLI printed nothing."""
    return {"data": {"resultData": {"runData": {}, "error": None}}}


def build_command(executable: str, workflow_id: str) -> list[str]:
    return [executable, "execute", f"--id={workflow_id}", "--rawOutput"]


def format_command(command: Sequence[str]) -> str:
    """Render a command for debug output, quoting the workflow id like a shell would."""
    rendered = []
    for arg in command:
        if arg.startswith("--id="):
            rendered.append(f'--id="{arg[len("--id=") :]}"')
        else:
            rendered.append(arg)
    return " ".join(rendered)


def build_environment(
    encryption_key: Optional[str] = None, extra_env: Optional[dict[str, str]] = None
) -> dict[str, str]:
    """Environment for the CLI: inherited, plus flags that disable side effects."""
    env = dict(os.environ)
    if encryption_key:
        env["N8N_ENCRYPTION_KEY"] = encryption_key
    env["N8N_ENFORCE_SETTINGS_FILE_PERMISSIONS"] = "true"
    env["SKIP_STATISTICS_EVENTS"] = "true"
    if extra_env:
        env.update(extra_env)
    return env


def _decode_first_object(output: str) -> tuple[bool, Any]:
    """Decode the first JSON object found in the output.

    Each ``{`` is tried in turn so braces inside log preamble lines don't hide
    the payload. Trailing text after the object is ignored.
    """
    start = output.find("{")
    while start != -1:
        try:
            value, _end = _json_decoder.raw_decode(output, start)
        except json.JSONDecodeError:
            start = output.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return True, value
        start = output.find("{", start + 1)
    return False, None


def extract_json_result(output: str) -> dict[str, Any]:
    """Parse the execution result out of the CLI's stdout.

    Returns:
        The first JSON object in the output, or an empty result for blank output

    Raises:
        OutputFormatError: If the output is non-empty but holds no JSON object
    """
    if "{" not in output:
        if output.strip():
            raise OutputFormatError(f"CLI output is not JSON and not empty: {output}", output)
        return empty_result()

    found, value = _decode_first_object(output)
    if not found:
        raise OutputFormatError(f"Failed to parse CLI output as JSON\nRaw Output: {output}", output)
    return value  # type: ignore[no-any-return]


def extract_error_details(stdout: str, stderr: str, process_message: Optional[str]) -> tuple[str, Optional[dict]]:
    """Find the most specific error message for a failed execution.

    Looks for ``data.resultData.error`` in a JSON payload on stdout first, then
    falls back to stderr, then to the process-level message.

    Returns:
        Tuple of (message, structured workflow error or None)
    """
    workflow_error: Optional[dict] = None
    found, payload = _decode_first_object(stdout) if stdout else (False, None)
    if found:
        data = payload.get("data")
        result_data = data.get("resultData") if isinstance(data, dict) else None
        error = result_data.get("error") if isinstance(result_data, dict) else None
        if isinstance(error, dict) and error:
            workflow_error = error

    if workflow_error is not None:
        message = workflow_error.get("message")
        if message is None:
            message = workflow_error.get("description")
        return (str(message) if message is not None else UNKNOWN_ERROR_MESSAGE), workflow_error

    return (stderr or process_message or UNKNOWN_ERROR_MESSAGE), None


def is_transient_failure(message: str, patterns: Iterable[str] = WARNING_PATTERNS) -> bool:
    """Check a failure message against the transient-failure substrings."""
    lowered = message.lower()
    return any(pattern.lower() in lowered for pattern in patterns)


@dataclass
class ProcessOutput:
    """Captured result of one CLI process."""

    returncode: Optional[int]
    stdout: str
    stderr: str
    error_message: Optional[str] = None  # timeout, overflow or spawn failure
    timed_out: bool = False
    overflowed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and self.error_message is None


@dataclass
class ExecutionOutcome:
    """Result of executing one workflow.

    ``result`` is None when the execution hit a transient failure; ``warning``
    then holds the message.
    """

    workflow_id: str
    result: Optional[dict[str, Any]] = None
    warning: Optional[str] = None
    command: Optional[str] = None

    @property
    def is_warning(self) -> bool:
        return self.result is None


class WorkflowCliExecutor:
    """Runs workflows through the external CLI and classifies failures."""

    def __init__(
        self,
        executable: str,
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        warning_patterns: Iterable[str] = WARNING_PATTERNS,
        debug: bool = False,
    ):
        self.executable = executable
        self.cwd = cwd
        self.env = env
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.warning_patterns = tuple(warning_patterns)
        self.debug = debug

    @classmethod
    def from_settings(cls, settings: "HarnessSettings", executable: str) -> "WorkflowCliExecutor":
        return cls(
            executable=executable,
            cwd=str(settings.suite_dir),
            env=build_environment(settings.encryption_key, settings.extra_env),
            timeout=settings.timeout,
            max_output_bytes=settings.max_output_bytes,
            warning_patterns=settings.warning_patterns,
            debug=settings.debug,
        )

    def _decode(self, data: Optional[bytes]) -> str:
        return data.decode("utf-8", errors="replace") if data else ""

    def run_process(self, command: list[str]) -> ProcessOutput:
        """Run the CLI synchronously and capture its output.

        Output beyond ``max_output_bytes`` on either stream is a failure; it is
        never silently truncated into a "successful" result.
        """
        try:
            process = subprocess.Popen(  # noqa: S603
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                cwd=self.cwd,
                env=self.env,
            )
        except OSError as e:
            logger.exception("Failed to start CLI", extra={"command": command[0]})
            return ProcessOutput(returncode=None, stdout="", stderr="", error_message=f"Failed to start CLI: {e}")

        try:
            raw_stdout, raw_stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            raw_stdout, raw_stderr = process.communicate()
            logger.warning(f"CLI timed out after {self.timeout} seconds", extra={"timeout": self.timeout})
            return ProcessOutput(
                returncode=process.returncode,
                stdout=self._decode(raw_stdout),
                stderr=self._decode(raw_stderr),
                error_message=f"Command timed out after {self.timeout} seconds",
                timed_out=True,
            )

        for stream_name, raw in (("stdout", raw_stdout), ("stderr", raw_stderr)):
            if raw and len(raw) > self.max_output_bytes:
                return ProcessOutput(
                    returncode=process.returncode,
                    stdout=self._decode(raw_stdout[: self.max_output_bytes]),
                    stderr=self._decode(raw_stderr[: self.max_output_bytes]),
                    error_message=(
                        f"CLI {stream_name} exceeded maximum buffer size "
                        f"({len(raw):,} > {self.max_output_bytes:,} bytes)"
                    ),
                    overflowed=True,
                )

        return ProcessOutput(
            returncode=process.returncode, stdout=self._decode(raw_stdout), stderr=self._decode(raw_stderr)
        )

    def execute(self, workflow_id: str) -> ExecutionOutcome:
        """Execute one workflow.

        Returns:
            ExecutionOutcome with the parsed result, or with a warning when the
            failure matched a transient pattern

        Raises:
            OutputFormatError: If the CLI succeeded but printed non-JSON output
            ExecutionError: If the CLI failed with a non-transient error
        """
        command = build_command(self.executable, workflow_id)
        rendered = format_command(command)
        if self.debug:
            # Echoed directly: the pytest runner leaves logging unconfigured
            click.echo(f"Executing: {rendered}", err=True)
            logger.debug(f"Executing: {rendered}")

        output = self.run_process(command)
        if output.succeeded:
            return ExecutionOutcome(workflow_id=workflow_id, result=extract_json_result(output.stdout), command=rendered)

        if output.overflowed:
            # Never classified: the byte counts in the message can look like status codes
            error = ExecutionError(
                output.error_message or "CLI output exceeded maximum buffer size",
                workflow_id=workflow_id,
                stdout=output.stdout,
                stderr=output.stderr,
                exit_code=output.returncode,
            )
            logger.error(f"Workflow execution failed for ID {workflow_id}: {error}")
            raise error

        if output.error_message is not None:
            # The process never produced a verdict of its own: report why
            message, workflow_error = output.error_message, None
        else:
            message, workflow_error = extract_error_details(
                output.stdout, output.stderr, f"Command failed with exit code {output.returncode}: {rendered}"
            )

        if is_transient_failure(message, self.warning_patterns):
            logger.warning(f"Warning in workflow {workflow_id}: {message}", extra={"workflow_id": workflow_id})
            return ExecutionOutcome(workflow_id=workflow_id, warning=message, command=rendered)

        error = ExecutionError(
            message,
            workflow_id=workflow_id,
            stdout=output.stdout,
            stderr=output.stderr,
            workflow_error=workflow_error,
            exit_code=output.returncode,
        )
        logger.error(f"Workflow execution failed for ID {workflow_id}:\n{error.format_diagnostics()}")
        raise error
