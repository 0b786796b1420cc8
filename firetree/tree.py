"""
FireTree - In-memory JSON tree helpers.

Paths are slash separated (``/users/alice``). A value of ``None`` at a path
means "nothing there": setting ``None`` deletes the node, and parents left
empty by a delete are pruned, matching how the remote store behaves.
"""

import copy
from typing import Any, Optional


def split_path(path: str) -> list[str]:
    """Split a slash separated path into its non-empty segments."""
    return [segment for segment in path.split("/") if segment]


def join_path(*parts: str) -> str:
    """Join path parts into a normalized absolute path."""
    segments: list[str] = []
    for part in parts:
        segments.extend(split_path(part))
    return "/" + "/".join(segments)


def relative_path(path: str, root: str) -> Optional[str]:
    """Return ``path`` relative to ``root``, or None if it is not below it."""
    path_segments = split_path(path)
    root_segments = split_path(root)
    if path_segments[: len(root_segments)] != root_segments:
        return None
    return "/" + "/".join(path_segments[len(root_segments):])


def get_at(tree: Any, path: str) -> Any:
    """Return the value stored at ``path`` or None."""
    node = tree
    for segment in split_path(path):
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def set_at(tree: Any, path: str, value: Any) -> Any:
    """
    Replace the value at ``path`` and return the new root.

    The root is returned rather than mutated in place when the write lands on
    the root itself or when the root is not an object.
    """
    segments = split_path(path)
    value = _prune(copy.deepcopy(value))
    if not segments:
        return value

    if not isinstance(tree, dict):
        if value is None:
            return tree
        tree = {}

    parents = [tree]
    node = tree
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            if value is None:
                return tree
            child = {}
            node[segment] = child
        parents.append(child)
        node = child

    if value is None:
        node.pop(segments[-1], None)
        # walk back up removing parents left empty
        for depth in range(len(parents) - 1, 0, -1):
            if parents[depth]:
                break
            parents[depth - 1].pop(segments[depth - 1], None)
        return tree if tree else None

    node[segments[-1]] = value
    return tree


def update_at(tree: Any, path: str, changes: dict[str, Any]) -> Any:
    """Merge ``changes`` into the object at ``path`` and return the new root.

    Each key of ``changes`` may itself be a path relative to ``path``.
    """
    for key, value in changes.items():
        tree = set_at(tree, join_path(path, key), value)
    return tree


def _prune(value: Any) -> Any:
    if isinstance(value, dict):
        pruned = {}
        for key, child in value.items():
            child = _prune(child)
            if child is not None:
                pruned[key] = child
        return pruned or None
    return value
