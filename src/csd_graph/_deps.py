"""Shared dependency helpers for scheduling canonical nodes."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from typing import Union

from csd_graph.models import Constant, Node


def operand_deps(
    nodes: Mapping[int, Node],
    canon: Mapping[int, Union[int, Constant]],
) -> dict[int, set[int]]:
    """Build {node: set of canonical nodes it reads}.

    Operands that canonicalize to a literal are not dependencies.
    """
    deps: dict[int, set[int]] = defaultdict(set)
    for index, node in nodes.items():
        for operand in node.operands:
            if isinstance(operand, Constant):
                continue
            target = canon[operand]
            if isinstance(target, int):
                deps[index].add(target)
    return deps


def effect_chain(order: Sequence[int]) -> dict[int, set[int]]:
    """Make each effectful node depend on the one issued just before it."""
    deps: dict[int, set[int]] = defaultdict(set)
    for previous, current in zip(order, order[1:]):
        deps[current].add(previous)
    return deps


def build_forward_deps(
    nodes: Mapping[int, Node],
    canon: Mapping[int, Union[int, Constant]],
    effect_order: Sequence[int],
) -> dict[int, set[int]]:
    """Data dependencies plus the effect-order chain, restricted to *nodes*."""
    deps = operand_deps(nodes, canon)
    for index, before in effect_chain(effect_order).items():
        deps[index] |= before
    return {i: {d for d in ds if d in nodes} for i, ds in deps.items() if i in nodes}


def reachable(
    seeds: Iterable[int],
    nodes: Sequence[Node],
    canon: Mapping[int, Union[int, Constant]],
) -> set[int]:
    """Canonical nodes reachable from *seeds* by following operands."""
    seen: set[int] = set()
    worklist = list(seeds)
    while worklist:
        index = worklist.pop()
        if index in seen:
            continue
        seen.add(index)
        for operand in nodes[index].operands:
            if isinstance(operand, Constant):
                continue
            target = canon[operand]
            if isinstance(target, int):
                worklist.append(target)
    return seen
