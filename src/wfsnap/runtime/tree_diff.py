"""Structural diff of JSON trees for snapshot comparison."""

from typing import Any

ROOT_PATH = "$"


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _same_primitive(expected: Any, actual: Any) -> bool:
    # JSON booleans never equal numbers, unlike Python's True == 1
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected is actual
    return bool(expected == actual)


def _join_key(path: str, key: str) -> str:
    return f"{path}.{key}" if path else str(key)


def _collect(expected: Any, actual: Any, path: str, out: list[str]) -> None:
    if not _is_container(expected) or not _is_container(actual) or isinstance(expected, list) != isinstance(actual, list):
        if _is_container(expected) or _is_container(actual) or not _same_primitive(expected, actual):
            out.append(path or ROOT_PATH)
        return

    if isinstance(expected, list):
        if len(expected) != len(actual):
            out.append(path or ROOT_PATH)
        for index in range(min(len(expected), len(actual))):
            _collect(expected[index], actual[index], f"{path}[{index}]", out)
        return

    for key in expected:
        child = _join_key(path, key)
        if key in actual:
            _collect(expected[key], actual[key], child, out)
        else:
            out.append(child)
    for key in actual:
        if key not in expected:
            out.append(_join_key(path, key))


def find_differences(expected: Any, actual: Any, path: str = "") -> list[str]:
    """Return the paths at which two JSON trees differ.

    Paths use dot notation for object keys and brackets for list indexes, e.g.
    ``data.resultData.runData.NodeA[0].json.field``. A key present on only one
    side is reported at that key; lists of different lengths are reported at
    the list itself and compared element-wise up to the shorter length. A
    mismatch at the top level is reported as ``$``.

    Returns:
        Unique paths in discovery order (empty when the trees are equal)
    """
    out: list[str] = []
    _collect(expected, actual, path, out)
    return list(dict.fromkeys(out))


def format_differences(differences: list[str]) -> str:
    """Render a difference list for a failure report."""
    if not differences:
        return "No snapshot differences found."
    return "Snapshot differences found in fields:\n- " + "\n- ".join(differences)
