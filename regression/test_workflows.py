"""One test per workflow in regression/workflows/.

SNAPSHOTS=update pytest regression    # create or refresh snapshots
SNAPSHOTS=compare pytest regression   # check results against snapshots
"""

from wfsnap.testing.plugin import check_report


def test_workflow(workflow_report):
    check_report(workflow_report)
