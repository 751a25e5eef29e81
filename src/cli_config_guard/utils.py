"""Utility functions for cli-config-guard."""

import copy
from typing import Any

from .fieldpath import Segment

MISSING = object()


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries with overlay precedence.

    Recursively merges nested dictionaries. Non-dict values in overlay
    completely replace corresponding values in base.

    Args:
        base: Base dictionary
        overlay: Overlay dictionary (takes precedence)

    Returns:
        New merged dictionary (base and overlay are not modified)

    Examples:
        >>> base = {"a": 1, "b": {"c": 2, "d": 3}}
        >>> overlay = {"b": {"c": 20}, "e": 5}
        >>> deep_merge(base, overlay)
        {'a': 1, 'b': {'c': 20, 'd': 3}, 'e': 5}

        >>> deep_merge({}, {"a": 1})
        {'a': 1}

        >>> deep_merge({"a": 1}, {})
        {'a': 1}
    """
    result = base.copy()

    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            # Both base and overlay have dict at this key - recurse
            result[key] = deep_merge(result[key], value)
        else:
            # Overlay wins - replace completely
            result[key] = copy.deepcopy(value)

    return result


def get_value(tree: Any, segments: tuple[Segment, ...], default: Any = MISSING) -> Any:
    """Look up a value by path segments.

    Args:
        tree: Nested dict/list structure
        segments: Keys and list indices from the root
        default: Returned when any segment is missing

    Returns:
        The value at the path, or ``default``

    Examples:
        >>> get_value({"a": {"b": [1, 2]}}, ("a", "b", 1))
        2

        >>> get_value({"a": 1}, ("x",), None) is None
        True
    """
    current = tree
    for segment in segments:
        if isinstance(segment, int) and isinstance(current, list):
            if not 0 <= segment < len(current):
                return default
            current = current[segment]
        elif isinstance(segment, str) and isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        else:
            return default
    return current


def set_value(tree: dict[str, Any], segments: tuple[Segment, ...], value: Any) -> None:
    """Set a value in place, creating intermediate maps as needed.

    Intermediate values that are not maps are replaced by maps. List indices
    are only followed, never created.

    Args:
        tree: Root mapping to modify
        segments: Non-empty path of mapping keys (and existing list indices)
        value: Value to store

    Raises:
        ValueError: If the path is empty or points past the end of a list
    """
    if not segments:
        raise ValueError("Cannot set the root of a config tree")

    current: Any = tree
    for index, segment in enumerate(segments[:-1]):
        following = segments[index + 1]
        if isinstance(segment, int):
            if not isinstance(current, list) or not 0 <= segment < len(current):
                raise ValueError(f"List index {segment} out of range")
            if not isinstance(current[segment], (dict, list)):
                current[segment] = {}
            current = current[segment]
            continue
        child = current.get(segment)
        if isinstance(following, int):
            if not isinstance(child, list):
                raise ValueError(f"Expected a list at '{segment}'")
        elif not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child

    last = segments[-1]
    if isinstance(last, int):
        if not isinstance(current, list) or not 0 <= last < len(current):
            raise ValueError(f"List index {last} out of range")
    current[last] = value


def remove_value(tree: dict[str, Any], segments: tuple[Segment, ...]) -> bool:
    """Delete the value at a path in place.

    Args:
        tree: Root mapping to modify
        segments: Non-empty path of mapping keys and list indices

    Returns:
        True if a value was removed, False if the path didn't exist

    Raises:
        ValueError: If the path is empty
    """
    if not segments:
        raise ValueError("Cannot remove the root of a config tree")

    parent = get_value(tree, segments[:-1])
    last = segments[-1]
    if isinstance(last, int) and isinstance(parent, list) and 0 <= last < len(parent):
        del parent[last]
        return True
    if isinstance(last, str) and isinstance(parent, dict) and last in parent:
        del parent[last]
        return True
    return False
