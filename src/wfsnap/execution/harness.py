"""Workflow regression harness: runs the per-workflow pipeline and reports outcomes."""

import logging
import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional

from wfsnap.core.exceptions import ExecutionError, OutputFormatError, WfsnapError
from wfsnap.core.settings import HarnessSettings
from wfsnap.core.workflow_loader import WorkflowDefinition
from wfsnap.core.workflow_status import Outcome
from wfsnap.execution.cli_executor import WorkflowCliExecutor
from wfsnap.execution.flow import create_workflow_flow
from wfsnap.runtime.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class WorkflowReport:
    """Outcome of one workflow plus everything needed to explain it."""

    workflow_id: str
    workflow_name: str
    outcome: Outcome
    annotations: list[dict[str, str]] = field(default_factory=list)
    differences: list[str] = field(default_factory=list)
    error: Optional[str] = None
    diagnostics: Optional[str] = None
    duration: float = 0.0

    @property
    def title(self) -> str:
        return f"Execute: {self.workflow_name} (ID: {self.workflow_id})"

    def failure_message(self) -> str:
        """Message for a failed or fatal workflow, as shown by the test runner."""
        if self.outcome == Outcome.FAILED:
            diff = next((a["description"] for a in self.annotations if a["type"] == "diff"), "")
            return f"Snapshot mismatch for workflow {self.workflow_id}\n{diff}".rstrip()
        return self.diagnostics or self.error or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "outcome": self.outcome.value,
            "annotations": self.annotations,
            "differences": self.differences,
            "error": self.error,
            "duration": round(self.duration, 3),
        }


class WorkflowHarness:
    """Runs saved workflows through the CLI and checks them against snapshots.

    Workflows are independent: ``run_all`` may run several pipelines at once.
    """

    def __init__(
        self,
        settings: HarnessSettings,
        executor: Optional[WorkflowCliExecutor] = None,
        store: Optional[SnapshotStore] = None,
    ):
        self.settings = settings
        self._executor = executor
        self._executor_lock = threading.Lock()
        self.store = store or SnapshotStore(settings.snapshots_dir)

    @property
    def executor(self) -> WorkflowCliExecutor:
        """CLI executor, resolved on first use so tests can run without a CLI."""
        with self._executor_lock:
            if self._executor is None:
                from wfsnap.runtime.fixture_setup import find_cli_path

                self._executor = WorkflowCliExecutor.from_settings(self.settings, find_cli_path(self.settings))
            return self._executor

    def run_workflow(self, workflow: WorkflowDefinition, skip_list: Iterable[str] = ()) -> WorkflowReport:
        """Run one workflow's pipeline and classify its outcome.

        Fatal errors are reported, not raised, so that one broken workflow
        doesn't stop the rest of the suite.
        """
        start_time = time.time()
        report = WorkflowReport(workflow_id=workflow.id, workflow_name=workflow.name, outcome=Outcome.PASSED)

        if workflow.id in set(skip_list):
            report.outcome = Outcome.SKIPPED
            report.annotations.append({"type": "skip", "description": "Workflow is in skip list"})
            logger.info(f"Skipping workflow {workflow.id} (in skip list)")
            return report

        shared: dict[str, Any] = {
            "workflow": workflow,
            "settings": self.settings,
            "store": self.store,
            "annotations": report.annotations,
        }
        try:
            shared["executor"] = self.executor
            create_workflow_flow().run(shared)
        except WfsnapError as e:
            report.outcome = Outcome.FATAL
            report.error = str(e)
            report.diagnostics = self._diagnostics_for(e)
            report.annotations.append({"type": "error", "description": str(e)})
            logger.error(f"Workflow {workflow.name} (ID: {workflow.id}) failed: {e}")
        else:
            report.outcome = shared["outcome"]
            comparison = shared.get("comparison")
            if comparison is not None:
                report.differences = list(comparison.differences)
        finally:
            report.duration = time.time() - start_time

        return report

    @staticmethod
    def _diagnostics_for(error: WfsnapError) -> str:
        if isinstance(error, ExecutionError):
            return error.format_diagnostics()
        if isinstance(error, OutputFormatError):
            return f"{error}\n--- CLI Stdout ---\n{error.raw_output or '[No stdout]'}"
        return str(error)

    def run_all(
        self, workflows: list[WorkflowDefinition], skip_list: Iterable[str] = (), workers: int = 1
    ) -> list[WorkflowReport]:
        """Run every workflow and return reports in input order."""
        skip = frozenset(skip_list)
        if workers <= 1 or len(workflows) <= 1:
            return [self.run_workflow(workflow, skip) for workflow in workflows]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda w: self.run_workflow(w, skip), workflows))
