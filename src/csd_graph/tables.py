"""Lookup tables: init-rate, side-effect-free leaves of the graph."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Union

from csd_graph.errors import ShapeMismatchError, SizeError
from csd_graph.graph import Graph, NodeRef
from csd_graph.models import TableNode

DEFAULT_TABLE_SIZE = 8192


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def table_size(size: int | None, guard: bool = False) -> int:
    """Return the declared size of a table, guard point included.

    Without a guard point the size must be a power of two.  With one it
    may be given either as 2^k (the guard point is added) or already as
    2^k + 1.  Raises SizeError otherwise.
    """
    if size is None:
        size = DEFAULT_TABLE_SIZE
    if isinstance(size, bool) or not isinstance(size, int):
        raise SizeError(f"table size must be an integer, got {size!r}")
    if is_power_of_two(size):
        return size + 1 if guard else size
    if guard and is_power_of_two(size - 1):
        return size
    if guard:
        raise SizeError(
            f"table size {size} is neither a power of two nor a power of two plus one"
        )
    raise SizeError(f"table size {size} is not a power of two")


def make_table(
    graph: Graph,
    gen: Union[int, str],
    params: Sequence[float] = (),
    size: int | None = None,
    *,
    guard: bool = False,
) -> NodeRef:
    """Intern a table built by generator *gen*.

    Identical tables (same generator, parameters and size) share one node.
    Parameters are fixed numbers; signals cannot feed a table.
    """
    declared = table_size(size, guard)
    for p in params:
        if isinstance(p, bool) or not isinstance(p, (int, float)):
            raise ShapeMismatchError(
                f"table parameters must be numbers, got {type(p).__name__}"
            )
    table = TableNode(gen=gen, params=tuple(float(p) for p in params), size=declared, guard=guard)
    return graph.add_table(table)


def sine(graph: Graph, *partials: float, size: int | None = None, guard: bool = False) -> NodeRef:
    """Sum of harmonic sine partials (GEN10); a single fundamental by default."""
    return make_table(graph, 10, partials or (1.0,), size, guard=guard)


def linseg(
    graph: Graph, *points: float, size: int | None = None, guard: bool = False
) -> NodeRef:
    """Straight-line segments (GEN07): value, length, value, length, ..."""
    return make_table(graph, 7, points, size, guard=guard)
