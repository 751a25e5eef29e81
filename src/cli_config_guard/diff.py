"""Structural diff between config trees.

The diff is pure and total: any two trees produce a list of changes, never an
exception. It knows nothing about tools; blacklist, sensitivity and managed
fields are applied by callers.
"""

import math
from typing import Any

from .fieldpath import FieldPath
from .models import ChangeKind
from .models import FieldChange


def diff(before: Any, after: Any, file: str | None = None) -> list[FieldChange]:
    """Compare two config trees.

    Mappings are walked over the sorted union of their keys and lists over the
    union of their indices. A value that changes between container and leaf,
    or between mapping and list, is reported as a single ``modified`` change at
    that path.

    Args:
        before: Previous tree
        after: Current tree
        file: File qualifier for the produced paths

    Returns:
        Changes in walk order. ``diff(a, b)`` with every change reversed equals
        ``diff(b, a)``.

    Examples:
        >>> [str(c.path) for c in diff({"a": 1, "b": 2}, {"a": 1, "c": 3})]
        ['b', 'c']
    """
    changes: list[FieldChange] = []
    _walk(before, after, FieldPath(file=file), changes)
    return changes


def diff_files(
    before: dict[str, Any],
    after: dict[str, Any],
    primary: str,
) -> list[FieldChange]:
    """Compare two file sets of one tool.

    A file missing on one side compares as an empty tree. Paths into the
    primary file carry no file qualifier.

    Args:
        before: File name -> tree
        after: File name -> tree
        primary: Name of the tool's primary file

    Returns:
        Changes for all files, primary file first then the rest by name
    """
    names = sorted(set(before) | set(after), key=lambda name: (name != primary, name))
    changes: list[FieldChange] = []
    for name in names:
        qualifier = None if name == primary else name
        changes.extend(diff(before.get(name, {}), after.get(name, {}), qualifier))
    return changes


def values_equal(left: Any, right: Any) -> bool:
    """Type-aware equality for config values.

    Booleans never equal numbers, while ints and floats compare by value.
    NaN equals NaN so that a tree always equals itself.
    """
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(values_equal(left[key], right[key]) for key in left)
    if isinstance(left, list) and isinstance(right, list):
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if _is_number(left) and _is_number(right):
        return left == right or (_is_nan(left) and _is_nan(right))
    return type(left) is type(right) and left == right


def _walk(before: Any, after: Any, path: FieldPath, changes: list[FieldChange]) -> None:
    if isinstance(before, dict) and isinstance(after, dict):
        for key in sorted(set(before) | set(after), key=str):
            child = path.child(key)
            if key not in after:
                changes.append(FieldChange(child, ChangeKind.DELETED, old_value=before[key]))
            elif key not in before:
                changes.append(FieldChange(child, ChangeKind.ADDED, new_value=after[key]))
            else:
                _walk(before[key], after[key], child, changes)
        return

    if isinstance(before, list) and isinstance(after, list):
        for index in range(max(len(before), len(after))):
            child = path.child(index)
            if index >= len(after):
                changes.append(FieldChange(child, ChangeKind.DELETED, old_value=before[index]))
            elif index >= len(before):
                changes.append(FieldChange(child, ChangeKind.ADDED, new_value=after[index]))
            else:
                _walk(before[index], after[index], child, changes)
        return

    if not values_equal(before, after):
        changes.append(FieldChange(path, ChangeKind.MODIFIED, old_value=before, new_value=after))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)
