import json
from enum import Enum
from typing import Any, Dict, List, Optional


class DiffStatus(str, Enum):
    """Outcome of comparing a target locale file against the source locale."""
    OK = "ok"
    MISSING_FILE = "missing-file"
    OUTDATED = "outdated"


def is_blank(value: Any) -> bool:
    """A value counts as blank when it is absent, ``None`` or an empty string."""
    return value is None or value == ''


def missing_keys(source_flat: Dict[str, Any], target_flat: Dict[str, Any]) -> List[str]:
    """
    Lists the key-paths that hold content in the source but not in the target.

    A source key is reported when its source value is non-blank and the target
    value is absent, ``None`` or an empty string.

    Args:
        source_flat: Flattened source locale.
        target_flat: Flattened target locale.

    Returns:
        The missing key-paths, sorted ascending.
    """
    return sorted(
        key for key, source_value in source_flat.items()
        if not is_blank(source_value) and is_blank(target_flat.get(key))
    )


def extra_keys(source_flat: Dict[str, Any], target_flat: Dict[str, Any]) -> List[str]:
    """Key-paths present in the target but no longer in the source, sorted."""
    return sorted(target_flat.keys() - source_flat.keys())


def normalize_tree(tree: Any) -> Any:
    """Recursively sort the keys of every object in ``tree``. Lists and scalars are kept as is."""
    if isinstance(tree, dict):
        return {key: normalize_tree(tree[key]) for key in sorted(tree)}
    return tree


def _canonical_json(tree: Any) -> str:
    return json.dumps(normalize_tree(tree), ensure_ascii=False, sort_keys=True, separators=(',', ':'))


def structural_status(source_tree: Dict[str, Any], target_tree: Optional[Dict[str, Any]]) -> DiffStatus:
    """
    Compares the normalized serializations of the source and target trees.

    Values take part in the comparison, so a fully translated file is still
    reported as ``OUTDATED``. The result is informational only.

    Args:
        source_tree: The source locale tree.
        target_tree: The target locale tree, or ``None`` when the file does not exist.

    Returns:
        ``MISSING_FILE``, ``OK`` or ``OUTDATED``.
    """
    if target_tree is None:
        return DiffStatus.MISSING_FILE
    if _canonical_json(source_tree) == _canonical_json(target_tree):
        return DiffStatus.OK
    return DiffStatus.OUTDATED
