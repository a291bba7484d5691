"""Pipeline nodes for one workflow's regression run.

Each node follows PocketFlow's prep/exec/post lifecycle and communicates through
the shared store:

- Reads: shared["workflow"]: WorkflowDefinition
- Reads: shared["settings"]: HarnessSettings
- Reads: shared["executor"]: WorkflowCliExecutor
- Reads: shared["store"]: SnapshotStore
- Writes: shared["result"]: dict  # normalized execution result
- Writes: shared["warning"]: str  # transient failure message
- Writes: shared["comparison"]: SnapshotComparison
- Writes: shared["snapshot_action"]: str  # created / updated / disabled
- Writes: shared["outcome"]: Outcome
- Writes: shared["annotations"]: list[dict]  # {type, description}
"""

import logging
from typing import Any, Optional

from pocketflow import Node

from wfsnap.core.workflow_status import Outcome
from wfsnap.runtime.normalizer import normalize_result
from wfsnap.runtime.snapshots import SnapshotComparison, mode_name
from wfsnap.runtime.tree_diff import format_differences

logger = logging.getLogger(__name__)


def annotate(shared: dict, annotation_type: str, description: str) -> None:
    shared.setdefault("annotations", []).append({"type": annotation_type, "description": description})


class ExecuteWorkflowNode(Node):
    """Run the workflow through the CLI.

    Actions: default (result available), warning (transient failure, no result)
    """

    def prep(self, shared: dict) -> dict[str, Any]:
        workflow = shared["workflow"]
        logger.info(f"Running workflow: {workflow.name} (ID: {workflow.id})")
        return {"executor": shared["executor"], "workflow_id": workflow.id}

    def exec(self, prep_res: dict[str, Any]) -> Any:
        return prep_res["executor"].execute(prep_res["workflow_id"])

    def post(self, shared: dict, prep_res: dict[str, Any], exec_res: Any) -> str:
        if exec_res.is_warning:
            shared["warning"] = exec_res.warning
            annotate(shared, "warning", f"Execution warning: {exec_res.warning}")
            logger.info(f"Workflow {prep_res['workflow_id']} completed with warnings. Skipping snapshot.")
            return "warning"
        shared["result"] = exec_res.result
        return "default"


class NormalizeResultNode(Node):
    """Strip volatile fields and apply node rules (and shallow collapsing)."""

    def prep(self, shared: dict) -> dict[str, Any]:
        settings = shared["settings"]
        return {
            "result": shared["result"],
            "workflow": shared["workflow"],
            "shallow": settings.is_shallow,
            "ignored_properties": settings.ignored_properties,
        }

    def exec(self, prep_res: dict[str, Any]) -> dict[str, Any]:
        return normalize_result(
            prep_res["result"],
            prep_res["workflow"],
            shallow=prep_res["shallow"],
            ignored_properties=prep_res["ignored_properties"],
        )

    def post(self, shared: dict, prep_res: dict[str, Any], exec_res: dict[str, Any]) -> str:
        shared["result"] = exec_res
        if prep_res["shallow"]:
            logger.info(f"Applied shallow processing for workflow {prep_res['workflow'].id}")
            annotate(shared, "processing", "Shallow mode")
        return "default"


class VerifySnapshotNode(Node):
    """Write or compare the snapshot, depending on the configured mode."""

    def prep(self, shared: dict) -> dict[str, Any]:
        settings = shared["settings"]
        return {
            "store": shared["store"],
            "workflow_id": shared["workflow"].id,
            "result": shared["result"],
            "compare": settings.should_compare_snapshots,
            "update": settings.should_update_snapshots,
            "shallow": settings.is_shallow,
        }

    def exec(self, prep_res: dict[str, Any]) -> dict[str, Any]:
        workflow_id = prep_res["workflow_id"]
        if prep_res["update"]:
            action = prep_res["store"].write(workflow_id, prep_res["result"], prep_res["shallow"])
            return {"action": action, "comparison": None}
        if prep_res["compare"]:
            comparison = prep_res["store"].compare(workflow_id, prep_res["result"], prep_res["shallow"])
            return {"action": "compared", "comparison": comparison}
        logger.info(f"Skipping snapshot handling for {workflow_id} (snapshots not enabled)")
        return {"action": "disabled", "comparison": None}

    def post(self, shared: dict, prep_res: dict[str, Any], exec_res: dict[str, Any]) -> str:
        action = exec_res["action"]
        shared["snapshot_action"] = action
        if action == "disabled":
            annotate(shared, "snapshot", "Snapshots not enabled")
        elif action in ("created", "updated"):
            annotate(shared, "snapshot", f"{action.capitalize()} ({mode_name(prep_res['shallow'])} mode)")

        comparison: Optional[SnapshotComparison] = exec_res["comparison"]
        shared["comparison"] = comparison
        if comparison is not None:
            for warning in comparison.warnings:
                annotate(shared, "warning", warning)
            if comparison.differences:
                annotate(shared, "diff", format_differences(comparison.differences))
        return "default"


class ReportOutcomeNode(Node):
    """Decide the workflow's outcome from what the earlier nodes recorded."""

    def prep(self, shared: dict) -> dict[str, Any]:
        return {
            "workflow_id": shared["workflow"].id,
            "warning": shared.get("warning"),
            "comparison": shared.get("comparison"),
            "snapshot_action": shared.get("snapshot_action"),
        }

    def exec(self, prep_res: dict[str, Any]) -> Outcome:
        if prep_res["warning"] is not None:
            return Outcome.WARNING
        comparison = prep_res["comparison"]
        if comparison is not None and not comparison.passed:
            return Outcome.FAILED
        return Outcome.PASSED

    def post(self, shared: dict, prep_res: dict[str, Any], exec_res: Outcome) -> Optional[str]:
        shared["outcome"] = exec_res
        workflow_id = prep_res["workflow_id"]
        if exec_res == Outcome.FAILED:
            logger.warning(f"Snapshot for workflow {workflow_id} differs")
        elif prep_res["snapshot_action"] == "compared":
            logger.info(f"Snapshot for workflow {workflow_id} matches")
        elif exec_res == Outcome.PASSED and prep_res["snapshot_action"] == "disabled":
            logger.info(f"Workflow {workflow_id} executed successfully")
        return None
