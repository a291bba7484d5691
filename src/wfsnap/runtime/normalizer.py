"""Normalization of execution results before snapshot comparison.

Execution traces contain values that change on every run (timings, container
ids, counters) and node outputs that are too volatile to compare verbatim.
Normalization removes the former globally and applies per-node rules for the
latter. Rules are written by workflow authors into a node's notes field, one
directive per line::

    CAP_RESULTS_LENGTH=1
    IGNORED_PROPERTIES=id,createdAt,updatedAt
    KEEP_ONLY_PROPERTIES=status,name

In shallow mode every nested list or object left in an item's ``json`` payload
is collapsed to a type marker, so only top-level fields and their types are
compared.
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from wfsnap.core.workflow_loader import WorkflowDefinition

logger = logging.getLogger(__name__)

GLOBALLY_IGNORED_PROPERTIES: tuple[str, ...] = (
    "executionTime",
    "startTime",
    "startedAt",
    "stoppedAt",
    "containerId",
    "isAgentRunning",
    "nbLaunches",
    "lastEndedAt",
)

CAP_RESULTS_LENGTH = "CAP_RESULTS_LENGTH"
IGNORED_PROPERTIES = "IGNORED_PROPERTIES"
KEEP_ONLY_PROPERTIES = "KEEP_ONLY_PROPERTIES"

ARRAY_MARKER = "json array"
OBJECT_MARKER_KEY = "object"


def array_marker() -> list[str]:
    return [ARRAY_MARKER]


def object_marker() -> dict[str, bool]:
    return {OBJECT_MARKER_KEY: True}


@dataclass(frozen=True)
class NodeRules:
    """Redaction rules for one node, parsed from its notes."""

    cap_results: Optional[int] = None
    ignored_properties: Optional[tuple[str, ...]] = None
    keep_only_properties: Optional[tuple[str, ...]] = None

    @property
    def is_empty(self) -> bool:
        return self.cap_results is None and self.ignored_properties is None and self.keep_only_properties is None


EMPTY_RULES = NodeRules()


def _split_property_list(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _parse_cap(value: str) -> Optional[int]:
    try:
        cap = int(value)
    except ValueError:
        return None
    return cap if cap >= 0 else None


def parse_node_rules(notes: Optional[str]) -> NodeRules:
    """Parse redaction directives from a node's notes.

    Lines without both a key and a value, and unknown keys, are ignored so that
    free-form notes never break a run. A non-numeric cap is treated as absent.
    When a key repeats, the last occurrence wins.
    """
    if not notes:
        return EMPTY_RULES

    cap_results: Optional[int] = None
    ignored: Optional[tuple[str, ...]] = None
    keep_only: Optional[tuple[str, ...]] = None

    for line in notes.splitlines():
        parts = line.split("=")
        key = parts[0].strip()
        value = parts[1].strip() if len(parts) > 1 else ""
        if not key or not value:
            continue

        if key == CAP_RESULTS_LENGTH:
            cap_results = _parse_cap(value)
        elif key == IGNORED_PROPERTIES:
            ignored = _split_property_list(value)
        elif key == KEEP_ONLY_PROPERTIES:
            keep_only = _split_property_list(value)
        else:
            logger.debug(f"Ignoring unknown node directive: {key}")

    return NodeRules(cap_results=cap_results, ignored_properties=ignored, keep_only_properties=keep_only)


def extract_node_rules(workflow: "WorkflowDefinition") -> dict[str, NodeRules]:
    """Map node name to its rules, for nodes that declare any."""
    rules: dict[str, NodeRules] = {}
    for node in workflow.nodes:
        node_rules = parse_node_rules(node.notes)
        if not node_rules.is_empty:
            rules[node.name] = node_rules
    return rules


def remove_properties_recursively(obj: Any, properties: Iterable[str]) -> None:
    """Delete every key named in ``properties`` at any depth of ``obj``."""
    names = properties if isinstance(properties, (set, frozenset)) else frozenset(properties)
    _remove_properties(obj, names)


def _remove_properties(obj: Any, names: frozenset[str]) -> None:
    if isinstance(obj, list):
        for item in obj:
            _remove_properties(item, names)
    elif isinstance(obj, dict):
        for key in list(obj):
            if key in names:
                del obj[key]
            else:
                _remove_properties(obj[key], names)


def _run_data(result: Any) -> Optional[dict[str, Any]]:
    if not isinstance(result, dict):
        return None
    data = result.get("data")
    if not isinstance(data, dict):
        return None
    result_data = data.get("resultData")
    if not isinstance(result_data, dict):
        return None
    run_data = result_data.get("runData")
    return run_data if isinstance(run_data, dict) else None


def _iter_item_groups(runs: Any) -> Iterator[list[Any]]:
    """Yield every item group of every output channel of every run."""
    if not isinstance(runs, list):
        return
    for run in runs:
        if not isinstance(run, dict) or not isinstance(run.get("data"), dict):
            continue
        for outputs in run["data"].values():
            if not isinstance(outputs, list):
                continue
            for group in outputs:
                if isinstance(group, list):
                    yield group


def _collapse_nested(payload: dict[str, Any]) -> None:
    for key, value in payload.items():
        if isinstance(value, list):
            payload[key] = array_marker()
        elif isinstance(value, dict):
            payload[key] = object_marker()


def _apply_to_group(group: list[Any], rules: NodeRules, shallow: bool) -> None:
    if rules.cap_results is not None and len(group) > rules.cap_results:
        del group[rules.cap_results :]

    for item in group:
        if not isinstance(item, dict) or not isinstance(item.get("json"), dict):
            continue

        if rules.ignored_properties:
            for prop in rules.ignored_properties:
                item["json"].pop(prop, None)

        if rules.keep_only_properties is not None:
            payload = item["json"]
            item["json"] = {prop: payload[prop] for prop in rules.keep_only_properties if prop in payload}

        if shallow:
            _collapse_nested(item["json"])


def apply_node_rules(result: dict[str, Any], rules_by_node: dict[str, NodeRules], shallow: bool) -> None:
    """Apply per-node rules to a result in place.

    Rules apply in a fixed order per item group: cap, then ignored properties,
    then keep-only. In shallow mode every item of every node is also collapsed,
    whether or not the node has rules.
    """
    run_data = _run_data(result)
    if run_data is None:
        return
    if not shallow and not rules_by_node:
        return

    for node_name, runs in run_data.items():
        rules = rules_by_node.get(node_name, EMPTY_RULES)
        if rules.is_empty and not shallow:
            continue
        for group in _iter_item_groups(runs):
            _apply_to_group(group, rules, shallow)


def normalize_result(
    result: dict[str, Any],
    workflow: "WorkflowDefinition",
    shallow: bool,
    ignored_properties: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """Normalize an execution result in place and return it.

    Args:
        result: Parsed execution result from the CLI
        workflow: The workflow that produced it (source of node rules)
        shallow: Collapse nested structures to type markers
        ignored_properties: Volatile field names to strip everywhere
            (defaults to GLOBALLY_IGNORED_PROPERTIES)
    """
    remove_properties_recursively(
        result, GLOBALLY_IGNORED_PROPERTIES if ignored_properties is None else ignored_properties
    )

    rules_by_node = extract_node_rules(workflow)
    if rules_by_node:
        logger.debug(
            f"Applying node rules for workflow {workflow.id}",
            extra={"nodes": sorted(rules_by_node)},
        )
    apply_node_rules(result, rules_by_node, shallow)
    return result
