"""Common-subexpression rendering of expression graphs.

Pass 1 canonicalizes: every pure node is keyed on (op, rate, canonical
operands) and nodes with equal keys collapse onto the first one.  An
init-rate ``const`` leaf keys the same as its literal, so it is inlined.
Effectful nodes are keyed on their token and never collapse.

Pass 2 schedules the surviving nodes so that every operand comes before
its consumer and effectful nodes keep the order the effect stream
recorded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Union

from csd_graph._deps import build_forward_deps, reachable
from csd_graph.effects import Effect, EffectSequencer
from csd_graph.errors import EffectOrderError, GraphScopeError, ShapeMismatchError
from csd_graph.graph import Graph, NodeRef, TupleValue
from csd_graph.models import (
    Arg,
    Constant,
    EffectClass,
    Instruction,
    InstructionRef,
    Node,
    RenderConfig,
    RenderResult,
    SignalNode,
    TableNode,
)
from csd_graph.primitives import _COMMUTATIVE_OPS
from csd_graph.toposort import toposort

logger = logging.getLogger(__name__)

Canonical = Union[int, Constant]


def _is_const_leaf(node: Node) -> bool:
    return (
        isinstance(node, SignalNode)
        and node.op == "const"
        and node.effect is EffectClass.PURE
        and len(node.operands) == 1
        and isinstance(node.operands[0], Constant)
    )


def _canonical_operand(operand: Any, canon: Mapping[int, Canonical]) -> tuple[object, ...]:
    target = operand if isinstance(operand, Constant) else canon[operand]
    if isinstance(target, Constant):
        return ("lit",) + target.key()
    return ("n", target)


def _order_key(key: tuple[object, ...]) -> tuple[str, str]:
    """Sort key for commutative operand canonicalization."""
    return (str(key[0]), repr(key[1:]))


def canonical_key(
    node: Node,
    canon: Mapping[int, Canonical],
    commutative: frozenset[str] = _COMMUTATIVE_OPS,
) -> tuple[object, ...]:
    """Hashable identity of *node* with operands resolved through *canon*."""
    if isinstance(node, TableNode):
        return ("table", node.gen, node.params, node.size)
    if node.effect is EffectClass.EFFECTFUL:
        return ("effect", node.token)
    operands = [_canonical_operand(o, canon) for o in node.operands]
    if node.op in commutative:
        operands.sort(key=_order_key)
    return ("pure", node.op, node.rate, tuple(operands))


def canonicalize(
    graph: Graph,
    commutative: frozenset[str] = _COMMUTATIVE_OPS,
) -> tuple[dict[int, Canonical], int]:
    """Map every node index to its canonical node (or inlined literal).

    Returns (canon, merged) where *merged* counts nodes folded onto an
    earlier structurally identical node.
    """
    canon: dict[int, Canonical] = {}
    seen: dict[tuple[object, ...], int] = {}
    merged = 0
    # Node indices are already a topological order: operands are stored first.
    for index, node in enumerate(graph.nodes):
        if _is_const_leaf(node):
            canon[index] = node.operands[0]  # type: ignore[assignment]
            continue
        key = canonical_key(node, canon, commutative)
        if key in seen:
            canon[index] = seen[key]
            merged += 1
        else:
            seen[key] = index
            canon[index] = index
    return canon, merged


def _flatten(graph: Graph, root: Any) -> list[NodeRef | Constant]:
    payload = root.value if isinstance(root, Effect) else root
    items: Iterable[Any] = payload if isinstance(payload, TupleValue) else [payload]
    flat: list[NodeRef | Constant] = []
    for item in items:
        if isinstance(item, (TupleValue, Effect)):
            raise ShapeMismatchError("render roots cannot nest tuples")
        flat.append(graph.operand(item))
    return flat


def _effect_order(graph: Graph, effects: EffectSequencer | None) -> list[int]:
    recorded = [
        i for i, node in enumerate(graph.nodes) if node.effect is EffectClass.EFFECTFUL
    ]
    if effects is None:
        return sorted(recorded, key=lambda i: graph.node(i).token or 0)
    if effects.graph is not graph:
        raise GraphScopeError(f"effect stream does not belong to graph '{graph.name}'")
    order = [effects.node_of(token).index for token in effects.history]
    missing = sorted(set(recorded) - set(order))
    if missing:
        raise EffectOrderError(
            f"effectful node n{missing[0]} was not issued through the effect stream",
            node=missing[0],
        )
    return order


def _arg(target: Canonical, ids: Mapping[int, str]) -> Arg:
    if isinstance(target, Constant):
        return target
    return InstructionRef(ref=ids[target])


def _instruction(
    index: int, node: Node, canon: Mapping[int, Canonical], ids: Mapping[int, str]
) -> Instruction:
    if isinstance(node, TableNode):
        args: list[Arg] = [Constant(value=node.size), Constant(value=node.gen)]
        args.extend(Constant(value=p) for p in node.params)
    else:
        args = [
            o if isinstance(o, Constant) else _arg(canon[o], ids) for o in node.operands
        ]
    return Instruction(
        id=ids[index],
        op=node.op,
        rate=node.rate,
        effect=node.effect,
        token=node.token,
        args=args,
    )


def render(
    graph: Graph,
    roots: Sequence[Any],
    *,
    effects: EffectSequencer | None = None,
    config: RenderConfig | None = None,
    commutative: frozenset[str] | None = None,
) -> RenderResult:
    """Render *graph* into an ordered instruction list.

    *roots* are the values the caller wants out (scalars, tuples or
    effect-wrapped values); ``outputs`` of the result lists, per root, the
    instruction ids or literals holding them.  Every effectful node is
    emitted whether or not a root reaches it.
    """
    config = config or RenderConfig()
    if commutative is None:
        commutative = _COMMUTATIVE_OPS
    if not config.canonicalize_commutative:
        commutative = frozenset()

    flat_roots = [_flatten(graph, root) for root in roots]
    effect_order = _effect_order(graph, effects)
    canon, merged = canonicalize(graph, commutative)

    nodes = graph.nodes
    canonical_ids = [i for i, t in canon.items() if isinstance(t, int) and t == i]
    if config.prune_unreachable:
        seeds: list[int] = list(effect_order)
        for flat in flat_roots:
            for value in flat:
                if isinstance(value, NodeRef):
                    target = canon[value.index]
                    if isinstance(target, int):
                        seeds.append(target)
        live = reachable(seeds, nodes, canon)
        # Merges only count for duplicates a root or an effect actually reads.
        raw_seeds = list(effect_order)
        for flat in flat_roots:
            raw_seeds.extend(v.index for v in flat if isinstance(v, NodeRef))
        raw_live = reachable(raw_seeds, nodes, {i: i for i in range(len(nodes))})
        merged = sum(
            1 for i in raw_live if isinstance(canon[i], int) and canon[i] != i
        )
    else:
        live = set(canonical_ids)

    live_nodes = {i: nodes[i] for i in canonical_ids if i in live}
    deps = build_forward_deps(live_nodes, canon, effect_order)
    order = toposort(deps, live_nodes)

    ids = {index: f"n{position}" for position, index in enumerate(order)}
    instructions = [_instruction(i, nodes[i], canon, ids) for i in order]
    outputs = [
        [
            value if isinstance(value, Constant) else _arg(canon[value.index], ids)
            for value in flat
        ]
        for flat in flat_roots
    ]

    logger.debug(
        "render %s: %d nodes -> %d instructions (%d merged, %d effects)",
        graph.name,
        len(nodes),
        len(instructions),
        merged,
        len(effect_order),
    )
    return RenderResult(
        name=graph.name,
        sample_rate=config.sample_rate,
        ksmps=config.ksmps,
        instructions=instructions,
        outputs=outputs,
        merged=merged,
    )
