"""Per-workflow regression outcome types."""

from enum import Enum


class Outcome(str, Enum):
    """Outcome of one workflow's regression pipeline.

    - PASSED: executed, and the snapshot matched (or snapshots are disabled)
    - FAILED: executed, but the snapshot differs
    - WARNING: execution hit a known transient failure; no snapshot step ran
    - FATAL: execution or snapshot loading failed with a non-transient error
    - SKIPPED: the workflow is in the skip list and was never executed
    """

    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    FATAL = "fatal"
    SKIPPED = "skipped"

    @property
    def is_failure(self) -> bool:
        return self in (Outcome.FAILED, Outcome.FATAL)
