"""Key-path helpers for the JSON tree held by the realtime store."""

from typing import Any


def split_path(path: str) -> list[str]:
    return [segment for segment in path.strip().split("/") if segment]


def is_related(left: list[str], right: list[str]) -> bool:
    """True when one path is an ancestor of (or equal to) the other."""
    size = min(len(left), len(right))
    return left[:size] == right[:size]


def get_at(tree: Any, segments: list[str]) -> Any:
    node = tree
    for segment in segments:
        if isinstance(node, dict):
            node = node.get(segment)
        elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
            node = node[int(segment)]
        else:
            return None
        if node is None:
            return None
    return node


def set_at(tree: Any, segments: list[str], value: Any) -> Any:
    """Return `tree` with `value` stored at `segments`; None deletes.

    Empty parents left behind by a delete are pruned, as the store does.
    """
    if not segments:
        return value
    root = tree if isinstance(tree, dict) else {}
    head, rest = segments[0], segments[1:]
    child = set_at(root.get(head), rest, value)
    if child is None or child == {}:
        root.pop(head, None)
    else:
        root[head] = child
    return root if root else None
