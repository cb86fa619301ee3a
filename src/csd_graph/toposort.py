"""Topological sort for rendered graphs."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping


def toposort(deps: Mapping[int, set[int]], node_ids: Iterable[int]) -> list[int]:
    """Return *node_ids* in dependency order (Kahn's algorithm).

    Ties go to the lowest node index, so the result follows construction
    order wherever dependencies allow it and is deterministic.
    Raises ValueError if the dependencies contain a cycle.
    """
    in_degree: dict[int, int] = {nid: 0 for nid in node_ids}
    if not in_degree:
        return []

    reverse: dict[int, list[int]] = defaultdict(list)
    for nid, dep_set in deps.items():
        if nid not in in_degree:
            continue
        for dep in dep_set:
            if dep in in_degree:
                in_degree[nid] += 1
                reverse[dep].append(nid)

    # Kahn's with sorted queue for determinism
    queue = sorted(nid for nid, deg in in_degree.items() if deg == 0)
    result: list[int] = []

    while queue:
        current = queue.pop(0)
        result.append(current)
        for dependent in reverse[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                _insort(queue, dependent)

    if len(result) < len(in_degree):
        cycle_nodes = sorted(nid for nid, deg in in_degree.items() if deg > 0)
        raise ValueError(
            f"Graph contains a cycle through nodes: {', '.join(f'n{n}' for n in cycle_nodes)}"
        )

    return result


def _insort(lst: list[int], val: int) -> None:
    """Insert val into sorted list lst, maintaining sort order."""
    lo, hi = 0, len(lst)
    while lo < hi:
        mid = (lo + hi) // 2
        if lst[mid] < val:
            lo = mid + 1
        else:
            hi = mid
    lst.insert(lo, val)
