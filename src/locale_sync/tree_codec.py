"""
Conversion between nested locale trees and flat dotted-key maps.

A locale tree is a nested dictionary whose leaves are scalars or lists.
Lists are treated as atomic leaves and are never traversed into.
"""
from typing import Any, Dict


class _EmptyObject:
    """Marker leaf standing in for an empty nested object in a flat map."""

    def __repr__(self) -> str:
        return "EMPTY_OBJECT"


EMPTY_OBJECT = _EmptyObject()


def flatten(tree: Dict[str, Any], prefix: str = '', preserve_empty: bool = False) -> Dict[str, Any]:
    """
    Flatten a nested locale tree into a mapping of dotted key-paths to leaf values.

    Args:
        tree: The nested tree to flatten.
        prefix: Key-path of ``tree`` inside an enclosing tree, if any.
        preserve_empty: Emit ``EMPTY_OBJECT`` for empty nested objects instead of
            dropping them, so that ``unflatten`` can restore them.

    Returns:
        A flat dictionary, e.g. ``{"a": {"b": "x"}}`` becomes ``{"a.b": "x"}``.
    """
    flat: Dict[str, Any] = {}
    for key, value in tree.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            if not value:
                if preserve_empty:
                    flat[full_key] = EMPTY_OBJECT
                continue
            flat.update(flatten(value, full_key, preserve_empty))
        else:
            flat[full_key] = value
    return flat


def unflatten(flat_map: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rebuild a nested locale tree from a flat dotted-key map.

    Entries are applied in iteration order and the last write wins when two
    key-paths conflict: a leaf standing where a later entry needs an object is
    replaced by that object, and an object standing where a later entry puts
    a leaf is replaced by the leaf.

    Args:
        flat_map: Mapping of dotted key-paths to leaf values.

    Returns:
        The nested tree.
    """
    tree: Dict[str, Any] = {}
    for compound_key, value in flat_map.items():
        parts = compound_key.split('.')
        node = tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = {} if value is EMPTY_OBJECT else value
    return tree
