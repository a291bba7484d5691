"""Flow orchestration for one workflow's regression run.

    ExecuteWorkflowNode --default--> NormalizeResultNode --> VerifySnapshotNode --> ReportOutcomeNode
    ExecuteWorkflowNode --warning--------------------------------------------------> ReportOutcomeNode
"""

from pocketflow import Flow

from wfsnap.execution.nodes import ExecuteWorkflowNode, NormalizeResultNode, ReportOutcomeNode, VerifySnapshotNode


def create_workflow_flow() -> Flow:
    """Create the load-execute-normalize-compare pipeline for one workflow."""
    execute = ExecuteWorkflowNode()
    normalize = NormalizeResultNode()
    verify = VerifySnapshotNode()
    report = ReportOutcomeNode()

    execute >> normalize
    execute - "warning" >> report
    normalize >> verify
    verify >> report

    return Flow(start=execute)
