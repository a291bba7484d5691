"""Snapshot persistence and comparison.

Snapshots live one file per workflow at ``<dir>/<id>-snapshot.json``. Two
formats exist on disk: the legacy format is the bare execution result, the
current format wraps it with metadata::

    {"_meta": {"shallow": true, "createdAt": "...", "workflowId": "42"},
     "result": {...}}

Both are resolved once at load time into a snapshot object exposing
``expected_result`` and ``known_mode`` so comparison never branches on format.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict

from wfsnap.core.exceptions import ParseError, SnapshotMissingError
from wfsnap.runtime.tree_diff import find_differences

logger = logging.getLogger(__name__)

META_KEY = "_meta"
RESULT_KEY = "result"


def mode_name(shallow: bool) -> str:
    return "shallow" if shallow else "deep"


class SnapshotMeta(BaseModel):
    """Metadata stored alongside a current-format snapshot."""

    model_config = ConfigDict(extra="allow")

    shallow: Optional[bool] = None
    createdAt: Optional[str] = None  # noqa: N815
    workflowId: Optional[str] = None  # noqa: N815


@dataclass
class LegacySnapshot:
    """Bare execution result written before snapshots carried metadata."""

    result: Any

    @property
    def expected_result(self) -> Any:
        return self.result

    @property
    def known_mode(self) -> Optional[str]:
        return None


@dataclass
class MetaSnapshot:
    """Execution result wrapped with the mode it was created in."""

    meta: SnapshotMeta
    result: Any

    @property
    def expected_result(self) -> Any:
        return self.result

    @property
    def known_mode(self) -> Optional[str]:
        if self.meta.shallow is None:
            return None
        return mode_name(self.meta.shallow)


Snapshot = Union[LegacySnapshot, MetaSnapshot]


@dataclass
class SnapshotComparison:
    """Result of comparing an actual result against a stored snapshot."""

    workflow_id: str
    differences: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    legacy: bool = False

    @property
    def passed(self) -> bool:
        return not self.differences


def parse_snapshot(content: Any) -> Snapshot:
    """Resolve raw snapshot file content into a snapshot object."""
    if isinstance(content, dict) and content.get(META_KEY):
        meta = SnapshotMeta.model_validate(content[META_KEY]) if isinstance(content[META_KEY], dict) else SnapshotMeta()
        return MetaSnapshot(meta=meta, result=content.get(RESULT_KEY))
    return LegacySnapshot(result=content)


class SnapshotStore:
    """Reads and writes per-workflow snapshot files in a directory."""

    def __init__(self, snapshots_dir: Union[str, Path]):
        self.snapshots_dir = Path(snapshots_dir)

    def path_for(self, workflow_id: str) -> Path:
        return self.snapshots_dir / f"{workflow_id}-snapshot.json"

    def exists(self, workflow_id: str) -> bool:
        return self.path_for(workflow_id).exists()

    def write(self, workflow_id: str, result: Any, shallow: bool) -> str:
        """Create or overwrite the snapshot for a workflow.

        Returns:
            "created" or "updated"
        """
        snapshot_path = self.path_for(workflow_id)
        action = "updated" if snapshot_path.exists() else "created"
        logger.info(f"{'Updating' if action == 'updated' else 'Creating'} snapshot for workflow {workflow_id}")

        self.snapshots_dir.mkdir(parents=True, exist_ok=True)
        snapshot_data = {
            META_KEY: {
                "shallow": shallow,
                "createdAt": datetime.now(timezone.utc).isoformat(),
                "workflowId": workflow_id,
            },
            RESULT_KEY: result,
        }

        # Atomic write: write to temp file, then replace
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.snapshots_dir, prefix=f".{workflow_id}-snapshot.", suffix=".tmp"
        )
        try:
            with open(temp_fd, "w", encoding="utf-8") as f:
                json.dump(snapshot_data, f, indent=2)
            os.replace(temp_path, snapshot_path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

        logger.info(f"Snapshot saved to {snapshot_path} in {mode_name(shallow)} mode")
        return action

    def load(self, workflow_id: str) -> Snapshot:
        """Load the snapshot for a workflow.

        Raises:
            SnapshotMissingError: If no snapshot file exists
            ParseError: If the snapshot file is not valid UTF-8 JSON
        """
        snapshot_path = self.path_for(workflow_id)
        if not snapshot_path.exists():
            raise SnapshotMissingError(workflow_id, snapshot_path)
        try:
            with open(snapshot_path, encoding="utf-8") as f:
                content = json.load(f)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON in snapshot: {e}", snapshot_path) from e
        except UnicodeDecodeError as e:
            raise ParseError(f"Snapshot is not valid UTF-8: {e}", snapshot_path) from e
        return parse_snapshot(content)

    def compare(self, workflow_id: str, actual: Any, shallow: bool) -> SnapshotComparison:
        """Compare an actual result against the stored snapshot.

        A snapshot created in a different mode yields a warning, not an error;
        the differences are still computed and reported.
        """
        snapshot = self.load(workflow_id)
        comparison = SnapshotComparison(workflow_id=workflow_id, legacy=isinstance(snapshot, LegacySnapshot))

        current_mode = mode_name(shallow)
        if snapshot.known_mode is not None and snapshot.known_mode != current_mode:
            message = (
                f"Mode mismatch for workflow {workflow_id}: Snapshot was created in {snapshot.known_mode} mode, "
                f"but test is running in {current_mode} mode. Consider updating the snapshot with SNAPSHOTS=update"
            )
            logger.warning(message)
            comparison.warnings.append(message)
        elif comparison.legacy:
            logger.info(
                f"Legacy snapshot format detected for workflow {workflow_id}. Consider updating with SNAPSHOTS=update"
            )

        comparison.differences = find_differences(snapshot.expected_result, actual)
        return comparison
