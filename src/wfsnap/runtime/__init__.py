"""Result normalization, snapshot comparison and suite setup coordination."""

from .normalizer import NodeRules, normalize_result, parse_node_rules
from .setup_barrier import SetupBarrier
from .snapshots import LegacySnapshot, MetaSnapshot, SnapshotComparison, SnapshotStore
from .tree_diff import find_differences

__all__ = [
    "LegacySnapshot",
    "MetaSnapshot",
    "NodeRules",
    "SetupBarrier",
    "SnapshotComparison",
    "SnapshotStore",
    "find_differences",
    "normalize_result",
    "parse_node_rules",
]
