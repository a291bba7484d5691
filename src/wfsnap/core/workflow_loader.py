"""Loading of workflow definitions and the skip list from a suite directory."""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from wfsnap.core.exceptions import ParseError

logger = logging.getLogger(__name__)

WORKFLOW_FILE_EXTENSIONS = (".json",)


class WorkflowNode(BaseModel):
    """A node of a saved workflow. Only ``name`` and ``notes`` matter to the harness."""

    model_config = ConfigDict(extra="allow")

    name: str
    notes: Optional[str] = None


class WorkflowDefinition(BaseModel):
    """A saved workflow definition, read-only to the harness."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    nodes: list[WorkflowNode] = Field(default_factory=list)
    source_path: Optional[str] = Field(default=None, exclude=True)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Workflow ids may be numeric in exported files."""
        if v is None or isinstance(v, (dict, list)):
            raise ValueError("Workflow id must be a string or number")
        return str(v)

    @field_validator("nodes", mode="before")
    @classmethod
    def default_nodes(cls, v: Any) -> Any:
        return [] if v is None else v


def _read_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}", path) from e
    except UnicodeDecodeError as e:
        raise ParseError(f"File is not valid UTF-8: {e}", path) from e
    except OSError as e:
        raise ParseError(f"Failed to read file: {e}", path) from e


def load_workflow(path: Union[str, Path]) -> WorkflowDefinition:
    """Load a single workflow definition file.

    Raises:
        ParseError: If the file is unreadable, not JSON or not a workflow
    """
    path = Path(path)
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ParseError("Workflow file must contain a JSON object", path)
    try:
        workflow = WorkflowDefinition(**data)
    except ValidationError as e:
        raise ParseError(f"Invalid workflow definition: {e}", path) from e
    workflow.source_path = str(path)
    return workflow


def load_workflows(
    directory: Union[str, Path], extensions: Iterable[str] = WORKFLOW_FILE_EXTENSIONS
) -> list[WorkflowDefinition]:
    """Load every workflow definition in a directory.

    Files are read in name order. Any malformed file aborts the whole load, so
    callers never see a partial suite.

    Args:
        directory: Directory containing one JSON file per workflow
        extensions: File extensions recognized as workflow definitions

    Returns:
        List of workflow definitions, in file name order

    Raises:
        ParseError: If the directory is missing or any file fails to parse
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ParseError("Workflow source directory does not exist", directory)

    suffixes = tuple(ext.lower() for ext in extensions)
    files = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in suffixes)

    workflows = [load_workflow(path) for path in files]
    logger.debug(f"Loaded {len(workflows)} workflows from {directory}")
    return workflows


def load_skip_list(path: Union[str, Path]) -> set[str]:
    """Load the set of workflow ids to skip.

    The file holds a JSON array of ``{"workflowId": ...}`` objects. A missing
    file means nothing is skipped.

    Raises:
        ParseError: If the file exists but is not a JSON array
    """
    path = Path(path)
    if not path.exists():
        return set()

    data = _read_json(path)
    if not isinstance(data, list):
        raise ParseError("Skip list must be a JSON array", path)

    skip_list: set[str] = set()
    for entry in data:
        if isinstance(entry, dict) and entry.get("workflowId") is not None:
            skip_list.add(str(entry["workflowId"]))
        else:
            logger.debug(f"Ignoring skip list entry without workflowId: {entry!r}")
    return skip_list


def filter_workflows(workflows: list[WorkflowDefinition], pattern: Optional[str]) -> list[WorkflowDefinition]:
    """Keep workflows whose name or id contains the pattern (case-insensitive)."""
    if not pattern:
        return list(workflows)
    needle = pattern.lower()
    return [w for w in workflows if needle in w.name.lower() or needle == w.id.lower()]
